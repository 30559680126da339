import argparse
import csv
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from prepfire.core.security import create_access_token
from prepfire.crud import crud_user
from prepfire.db.session import SessionLocal, init_db
from prepfire.schemas.user import UserCreate


def create_users(email_file_path: str, output_csv_path: str, role: str, token_days: int):
    init_db()
    db = SessionLocal()
    issued_tokens = []

    try:
        with open(email_file_path, 'r') as f:
            emails = [line.strip() for line in f if line.strip() and '@' in line]

        print(f"Found {len(emails)} emails to process.")

        for email in emails:
            user = crud_user.user.get_by_email(db, email=email)
            if user:
                print(f"Existing user '{email}', issuing a new token.")
            else:
                try:
                    user = crud_user.user.create(db, obj_in=UserCreate(email=email, role=role))
                    print(f"SUCCESS: Created user for '{user.email}'.")
                except Exception as e:
                    print(f"ERROR: Could not create user for '{email}'. Reason: {e}")
                    db.rollback()
                    continue

            token = create_access_token(data={"sub": user.email}, expires_delta=timedelta(days=token_days))
            issued_tokens.append({'id': user.id, 'email': user.email, 'access_token': token})

        if issued_tokens:
            with open(output_csv_path, 'w', newline='') as csvfile:
                writer = csv.DictWriter(csvfile, fieldnames=['id', 'email', 'access_token'])
                writer.writeheader()
                writer.writerows(issued_tokens)
            print(f"\nSUCCESS: Wrote {len(issued_tokens)} access tokens to '{output_csv_path}'.")
        else:
            print("\nNo tokens were issued.")

    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create user accounts from a list of emails and issue access tokens.")
    parser.add_argument("email_file", help="Path to a text file containing one email per line.")
    parser.add_argument("--output", default="user_tokens.csv",
                        help="Path to the output CSV file for tokens (default: user_tokens.csv).")
    parser.add_argument("--role", default="user", choices=["user", "moderator", "admin"])
    parser.add_argument("--days", type=int, default=30, help="Token lifetime in days (default: 30).")

    args = parser.parse_args()
    create_users(args.email_file, args.output, args.role, args.days)
