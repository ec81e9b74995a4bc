import argparse
import logging
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv("tianjiapi/.env")

from tianjiapi.config import get_settings
from tianjiapi.database.connection import Database
from tianjiapi.logging_config import setup_logging
from tianjiapi.models import checkin, completeness, subscription, transaction  # noqa: F401
from tianjiapi.models.base import Base
from tianjiapi.models.profile import Profile, UserRole

logger = logging.getLogger("tianjiapi.scripts.init_db")


def init_db(admin_id: str = None, admin_email: str = None):
    """테이블 생성 (이미 있으면 건너뜀) 및 선택적으로 관리자 프로필 등록"""
    settings = get_settings()
    database = Database(settings)
    try:
        Base.metadata.create_all(bind=database.engine)
        logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

        if admin_id:
            with database.session() as db:
                profile = db.get(Profile, admin_id)
                if profile is None:
                    db.add(Profile(id=admin_id, email=admin_email, role=UserRole.ADMIN.value))
                    logger.info(f"Created admin profile {admin_id}")
                else:
                    profile.role = UserRole.ADMIN.value
                    logger.info(f"Promoted profile {admin_id} to admin")
                db.commit()
    finally:
        database.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create Tianji coin ledger tables")
    parser.add_argument("--admin-id", help="관리자로 등록할 프로필 ID")
    parser.add_argument("--admin-email", help="새 관리자 프로필 이메일")
    args = parser.parse_args()

    setup_logging(get_settings().LOG_LEVEL)
    init_db(args.admin_id, args.admin_email)
