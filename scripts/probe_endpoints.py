"""Smoke-check a running deployment of the admin & reporting API."""

from __future__ import annotations

import argparse
import os
from typing import Callable, List, Optional, Sequence, Tuple

import requests

DEFAULT_BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:8000")

Probe = Tuple[str, Callable[[requests.Session, str, float], Optional[str]]]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API root URL")
    parser.add_argument("--username", type=str, default=None, help="Optional login for the auth probes")
    parser.add_argument("--password", type=str, default=None, help="Password for --username")
    parser.add_argument("--timeout", type=float, default=10.0, help="Per-request timeout in seconds")
    return parser


def _expect_status(response: requests.Response, expected: int) -> Optional[str]:
    if response.status_code != expected:
        return f"expected HTTP {expected}, got {response.status_code}"
    return None


def probe_public_metrics(session: requests.Session, base_url: str, timeout: float) -> Optional[str]:
    response = session.get(f"{base_url}/api/public/metrics", timeout=timeout)
    problem = _expect_status(response, 200)
    if problem:
        return problem
    payload = response.json()
    if not payload.get("success"):
        return "payload did not report success"
    if response.headers.get("Cache-Control") != "public, max-age=300":
        return "missing public cache header"
    return None


def probe_rejects_parameters(session: requests.Session, base_url: str, timeout: float) -> Optional[str]:
    response = session.get(f"{base_url}/api/public/metrics", params={"probe": "1"}, timeout=timeout)
    return _expect_status(response, 400)


def probe_proxy_missing_target(session: requests.Session, base_url: str, timeout: float) -> Optional[str]:
    response = session.get(f"{base_url}/course_factory/api/admin/probe_missing_endpoint.php", timeout=timeout)
    problem = _expect_status(response, 404)
    if problem:
        return problem
    if response.json().get("error") != "Endpoint not found: probe_missing_endpoint.php":
        return "unexpected 404 body"
    return None


def _login_probes(username: str, password: str) -> List[Probe]:
    def probe_login_and_validate(session: requests.Session, base_url: str, timeout: float) -> Optional[str]:
        response = session.post(
            f"{base_url}/course_factory/api/auth/login.php",
            json={"username": username, "password": password},
            timeout=timeout,
        )
        problem = _expect_status(response, 200)
        if problem:
            return problem
        token = response.json().get("token")
        check = session.get(
            f"{base_url}/course_factory/api/auth/validate.php",
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )
        return _expect_status(check, 200)

    return [("login + validate via proxy", probe_login_and_validate)]


def run_probes(session: requests.Session, base_url: str, probes: Sequence[Probe], timeout: float) -> int:
    failures = 0
    for name, probe in probes:
        try:
            problem = probe(session, base_url, timeout)
        except requests.RequestException as exc:
            problem = f"request failed: {exc}"
        if problem:
            failures += 1
            print(f"FAIL  {name}: {problem}")
        else:
            print(f"OK    {name}")
    return failures


def main(argv: Sequence[str] | None = None, *, session: Optional[requests.Session] = None) -> int:
    args = _build_parser().parse_args(argv)
    base_url = args.base_url.rstrip("/")

    probes: List[Probe] = [
        ("public metrics", probe_public_metrics),
        ("public metrics rejects parameters", probe_rejects_parameters),
        ("proxy 404 for missing target", probe_proxy_missing_target),
    ]
    if args.username and args.password:
        probes.extend(_login_probes(args.username, args.password))

    owns_session = session is None
    session = session or requests.Session()
    try:
        failures = run_probes(session, base_url, probes, args.timeout)
    finally:
        if owns_session:
            session.close()

    print(f"{len(probes) - failures}/{len(probes)} probes passed")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
