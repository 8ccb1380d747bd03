import os
import sys
from datetime import date
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.mortgage_dashboard.db import build_engine, build_sessionmaker, session_scope
from app.mortgage_dashboard.models import Profile
from app.mortgage_dashboard.modules.mortgage_packages.models import MortgagePackageRecord
from app.mortgage_dashboard.modules.mortgage_packages.service import build_payload

SAMPLE_PACKAGES = (
    {
        "bank": "OCBC",
        "property_type": "Private",
        "category": "Fixed",
        "min_loan_size": "200000",
        "package_name": "OCBC 2Y Fixed Rates - 2 Years Lock-In",
        "lockin_period": "2 Years",
        "rates": "Year 1: 2.45% Fixed <br> Year 2: 2.45% Fixed <br> Thereafter: 3M SORA + 0.80%",
        "features": "- Lowest rate for loans above S$1.5M <br> - One free conversion after 12 months",
        "subsidies": "Legal subsidy of 0.2% of loan amount",
        "remarks": "",
    },
    {
        "bank": "DBS",
        "property_type": "HDB",
        "category": "Floating (Completed)",
        "min_loan_size": "100000",
        "package_name": "DBS 3M SORA Floating - No Lock-In",
        "lockin_period": "No Lock-in",
        "rates": "Year 1: 3M SORA + 0.30% <br> Thereafter: 3M SORA + 0.50%",
        "features": "",
        "subsidies": "",
        "remarks": "Waiver due to sale after 12 months",
    },
    {
        "bank": "UOB",
        "property_type": "Private",
        "category": "BUC",
        "min_loan_size": "800000",
        "package_name": "UOB BUC Fixed - 3 Years Lock-In",
        "lockin_period": "3 Years",
        "rates": "Year 1-3: 2.60% Fixed <br> Thereafter: 3M SORA + 0.75%",
        "features": "- Premium banking clients only",
        "subsidies": "",
        "remarks": "",
    },
)


def seed_only(*, database_url: str | None = None, with_samples: bool | None = None) -> None:
    """
    Seed the admin profile (and sample packages on an empty table) in an idempotent way.
    Does NOT overwrite an existing admin's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    if with_samples is None:
        with_samples = (os.environ.get("SEED_SAMPLE_PACKAGES") or "").strip() == "1"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///mortgage_dashboard.db").strip()

    engine = build_engine(db_url)
    try:
        with session_scope(build_sessionmaker(engine)) as s:
            admin = s.query(Profile).filter(Profile.email == admin_email).one_or_none()
            if not admin:
                admin = Profile(email=admin_email, password_hash=generate_password_hash(admin_password), role="admin")
                s.add(admin)
            elif not admin.role:
                admin.role = "admin"

            if with_samples and s.query(MortgagePackageRecord).count() == 0:
                today = date.today().isoformat()
                for sample in SAMPLE_PACKAGES:
                    payload = build_payload({**sample, "last_updated": today})
                    payload["last_updated"] = date.fromisoformat(payload["last_updated"])
                    s.add(MortgagePackageRecord(**payload))
    finally:
        engine.dispose()

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
