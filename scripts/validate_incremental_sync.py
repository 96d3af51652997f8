"""
Live check against a running API: populate twice and run two incremental
passes, then confirm the reruns wrote nothing new.

Env: SYNC_VALIDATE_API_BASE, SYNC_VALIDATE_TOKEN (operator JWT with sync:run),
SYNC_VALIDATE_COMPANY_ID (optional).
"""
import json
import os
import urllib.request
from urllib.error import HTTPError, URLError


API_BASE = os.getenv("SYNC_VALIDATE_API_BASE", "http://localhost:8000/api/v1").rstrip("/")
TOKEN = os.getenv("SYNC_VALIDATE_TOKEN", "")
COMPANY_ID = os.getenv("SYNC_VALIDATE_COMPANY_ID")
HTTP_TIMEOUT_SECONDS = int(os.getenv("SYNC_VALIDATE_HTTP_TIMEOUT_SECONDS", "600"))


def _request(method: str, path: str, payload: dict | None = None) -> dict | list:
    url = f"{API_BASE}{path}"
    headers = {"Content-Type": "application/json"}
    if TOKEN:
        headers["Authorization"] = f"Bearer {TOKEN}"
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(url, data=data, headers=headers, method=method.upper())
    try:
        with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT_SECONDS) as res:
            body = res.read().decode("utf-8")
            return json.loads(body) if body else {}
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore")
        raise RuntimeError(f"{method} {path} failed: HTTP {exc.code} {detail}") from exc
    except URLError as exc:
        raise RuntimeError(f"{method} {path} failed: {exc}") from exc


def main() -> None:
    if not TOKEN:
        raise RuntimeError("SYNC_VALIDATE_TOKEN is required")
    payload = {}
    if COMPANY_ID and str(COMPANY_ID).strip().isdigit():
        payload["company_id"] = int(str(COMPANY_ID).strip())

    first_populate = _request("POST", "/sync/populate", payload=payload)
    second_populate = _request("POST", "/sync/populate", payload=payload)
    print(json.dumps({"populate": [first_populate, second_populate]}, ensure_ascii=False))
    if int(second_populate.get("total_inserted") or 0) != 0:
        raise RuntimeError("Populate is not idempotent: second run inserted rows")

    first = _request("POST", "/sync/run", payload=payload)
    second = _request("POST", "/sync/run", payload=payload)
    for index, stats in enumerate((first, second), start=1):
        print(
            f"[run#{index}] job={stats.get('job_id')} companies={stats.get('companies_processed')} "
            f"created={stats.get('records_created')} updated={stats.get('records_updated')} "
            f"errors={stats.get('errors')} partial={stats.get('partial')}"
        )
    if int(second.get("errors") or 0) > 0:
        raise RuntimeError(f"Second pass reported errors for companies {second.get('companies_with_errors')}")
    if int(second.get("records_created") or 0) > 0:
        raise RuntimeError("Incremental rerun created rows that the first pass should have written")

    stats = _request("GET", "/sync/stats" + (f"?company_id={payload['company_id']}" if payload else ""))
    print(json.dumps({"ok": True, "stats": stats}, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
