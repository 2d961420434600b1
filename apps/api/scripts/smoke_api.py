from __future__ import annotations

import os
import sys

import httpx


def _assert_ok(response: httpx.Response, *, label: str) -> None:
    if response.status_code >= 400:
        raise RuntimeError(f"{label} failed: HTTP {response.status_code} body={response.text}")


def main() -> None:
    base_url = os.environ.get("API_BASE_URL", "http://localhost:3000")

    with httpx.Client(base_url=base_url, timeout=20.0) as client:
        for path in ("/healthz", "/readyz", "/api/health"):
            _assert_ok(client.get(path), label=f"GET {path}")
            print(f"ok: GET {path}")

        install = client.get("/api/slack/install", follow_redirects=False)
        if install.status_code != 302:
            raise RuntimeError(
                f"GET /api/slack/install: expected 302, got {install.status_code} "
                f"body={install.text}"
            )
        print("ok: GET /api/slack/install")

        team = client.get("/api/debug/team")
        _assert_ok(team, label="GET /api/debug/team")
        data = team.json()
        print(
            f"smoke complete: team={data['team_name']} members={len(data['members'])} "
            f"authorized={len(data['authorized_member_ids'])}"
        )


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001
        print(f"smoke failed: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
