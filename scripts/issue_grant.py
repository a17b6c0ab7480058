"""
Issue a trial or demo code from the command line.

Used for support requests and sales demos where no one goes through the web flow.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path so we can import from services
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import AccessError
from domain.grant import Audience
from services.grant_issuance_service import issue_demo, issue_trial


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Issue a trial or demo access code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Free trial for a consumer
  python issue_grant.py trial --owner user_123

  # Promotional demo for an enterprise prospect
  python issue_grant.py demo --owner user_123 --audience B2E --package security-awareness-2025
        """
    )

    parser.add_argument("kind", choices=["trial", "demo"], help="Kind of code to issue")
    parser.add_argument("--owner", required=True, help="User id the code is issued to")
    parser.add_argument(
        "--audience",
        choices=[a.value for a in Audience],
        default=Audience.B2C.value,
        help="Audience segment (default: B2C)"
    )
    parser.add_argument("--package", dest="package_ref", help="Catalog package the code unlocks")
    parser.add_argument("--organization", dest="organization_id", help="Organization id")

    args = parser.parse_args()

    try:
        if args.kind == "trial":
            grant = issue_trial(
                args.owner,
                package_ref=args.package_ref,
                audience=Audience(args.audience),
                organization_id=args.organization_id,
            )
        else:
            grant = issue_demo(
                args.owner,
                Audience(args.audience),
                package_ref=args.package_ref,
                organization_id=args.organization_id,
            )
    except AccessError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1

    print(f"[SUCCESS] {args.kind.capitalize()} code issued")
    print(f"  Code:      {grant.code}")
    print(f"  Audience:  {grant.audience.value}")
    print(f"  Seats:     {grant.max_seats}")
    print(f"  Valid:     {grant.start_date.date()} .. {grant.end_date.date()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
