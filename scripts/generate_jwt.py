from __future__ import annotations

import argparse
import json
from datetime import datetime, timedelta

import jwt

from backend.recruiting.settings import load_settings

KNOWN_ROLES = ("recruiter", "candidate", "service", "admin")


def build_claims(subject: str, roles: list[str], hours: int) -> dict:
    unknown = sorted(set(roles) - set(KNOWN_ROLES))
    if unknown:
        raise SystemExit(f"unknown roles: {', '.join(unknown)}")
    return {
        "sub": subject,
        "roles": roles,
        "exp": datetime.utcnow() + timedelta(hours=hours),
    }


def main() -> None:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Mint a bearer token for the Talent Core API.")
    parser.add_argument("--subject", required=True, help="User id, e.g. a recruiter profile id.")
    parser.add_argument("--roles", required=True, help=f"Comma-separated: {','.join(KNOWN_ROLES)}.")
    parser.add_argument("--hours", type=int, default=12)
    parser.add_argument("--secret", default=settings.jwt_secret, help="Defaults to JWT_SECRET.")
    parser.add_argument("--algorithm", default=settings.jwt_algorithm)
    parser.add_argument("--show-claims", action="store_true")
    args = parser.parse_args()

    roles = [item.strip() for item in args.roles.split(",") if item.strip()]
    claims = build_claims(args.subject, roles, args.hours)
    token = jwt.encode(claims, args.secret, algorithm=args.algorithm)
    if args.show_claims:
        print(json.dumps({**claims, "exp": claims["exp"].isoformat()}, indent=2))
    print(token)


if __name__ == "__main__":
    main()
