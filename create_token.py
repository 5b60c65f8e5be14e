"""Print a long-lived access token for an existing account.

Useful for calling the admin endpoints from scripts.  The account must
exist in the database the API uses, otherwise the token is rejected.

Usage:
    python create_token.py --email admin@homeservices.in --days 365
"""
import argparse

from home_services_api.app.core.security import create_access_token


def main() -> None:
    ap = argparse.ArgumentParser(description="Create an access token for a user e-mail.")
    ap.add_argument("--email", required=True, help="E-mail of the account the token is issued for")
    ap.add_argument("--days", type=int, default=365, help="Token lifetime in days (default: 365)")
    args = ap.parse_args()

    token = create_access_token({"sub": args.email}, expires_delta=args.days * 24 * 60 * 60)
    print(token)


if __name__ == "__main__":
    main()
