#!/usr/bin/env python3
"""
Seed business units, departments, users and department approvers.

Safe to run repeatedly: existing rows (matched by code / email / assignment)
are left untouched.
"""
import asyncio
import logging
import os
import sys
import uuid
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy.future import select

ROOT_DIR = Path(__file__).parent
sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / '.env')

from database import (  # noqa: E402
    ApproverType,
    BusinessUnit,
    Department,
    DepartmentApprover,
    User,
    UserRole,
    close_postgres_db,
    get_session_maker,
    init_postgres_db,
)
from routes.auth_routes import get_password_hash  # noqa: E402

logger = logging.getLogger(__name__)

BUSINESS_UNITS = [
    ("RDRC", "RD Realty Development Corporation", "Real estate development and property management"),
    ("RLII", "Richmond Land Innovations Inc", "Land development and innovation projects"),
]

DEPARTMENTS = {
    "RDRC": [
        ("RDRC-FIN", "Finance Department", "Financial management and accounting"),
        ("RDRC-OPS", "Operations Department", "Daily operations and management"),
        ("RDRC-HR", "Human Resources", "Employee management and recruitment"),
        ("RDRC-IT", "IT Department", "Technology and systems management"),
        ("RDRC-PROC", "Procurement Department", "Purchasing and procurement"),
    ],
    "RLII": [
        ("RLII-FIN", "Finance Department", "Financial management and accounting"),
        ("RLII-PROJ", "Project Management", "Project planning and execution"),
        ("RLII-ENG", "Engineering Department", "Technical and engineering services"),
        ("RLII-PROC", "Procurement Department", "Purchasing and procurement"),
        ("RLII-QA", "Quality Assurance", "Quality control and standards"),
    ],
}

# (first name, last name, email, role, department code)
USERS = [
    ("John", "Admin", "admin@rdrealty.com", UserRole.ADMIN, None),
    ("Sarah", "Owner", "owner@rdrealty.com", UserRole.OWNER, None),
    ("Maria", "Santos", "maria.santos@rdrealty.com", UserRole.MANAGER, "RDRC-FIN"),
    ("Robert", "Cruz", "robert.cruz@rdrealty.com", UserRole.ACCTG, "RDRC-FIN"),
    ("Lisa", "Reyes", "lisa.reyes@rdrealty.com", UserRole.TREASURY, "RDRC-FIN"),
    ("Michael", "Garcia", "michael.garcia@rdrealty.com", UserRole.MANAGER, "RDRC-OPS"),
    ("Jennifer", "Lopez", "jennifer.lopez@rdrealty.com", UserRole.STAFF, "RDRC-OPS"),
    ("David", "Tan", "david.tan@rdrealty.com", UserRole.PURCHASER, "RDRC-PROC"),
    ("Anna", "Rivera", "anna.rivera@rdrealty.com", UserRole.PURCHASER, "RDRC-PROC"),
    ("James", "Wilson", "james.wilson@rdrealty.com", UserRole.STAFF, "RDRC-IT"),
    ("Patricia", "Hernandez", "patricia.hernandez@richmondland.com", UserRole.MANAGER, "RLII-FIN"),
    ("Daniel", "Ramos", "daniel.ramos@richmondland.com", UserRole.ACCTG, "RLII-FIN"),
    ("Elizabeth", "Mendoza", "elizabeth.mendoza@richmondland.com", UserRole.MANAGER, "RLII-PROJ"),
    ("Carlos", "Bautista", "carlos.bautista@richmondland.com", UserRole.STAFF, "RLII-PROJ"),
    ("Stephanie", "Flores", "stephanie.flores@richmondland.com", UserRole.STAFF, "RLII-ENG"),
    ("Ryan", "Castillo", "ryan.castillo@richmondland.com", UserRole.STAFF, "RLII-ENG"),
    ("Michelle", "Torres", "michelle.torres@richmondland.com", UserRole.PURCHASER, "RLII-PROC"),
]

# (department code, approver email, approver type)
APPROVERS = [
    ("RDRC-FIN", "maria.santos@rdrealty.com", ApproverType.RECOMMENDING),
    ("RDRC-FIN", "michael.garcia@rdrealty.com", ApproverType.FINAL),
    ("RDRC-OPS", "michael.garcia@rdrealty.com", ApproverType.RECOMMENDING),
    ("RLII-FIN", "patricia.hernandez@richmondland.com", ApproverType.RECOMMENDING),
    ("RLII-PROJ", "elizabeth.mendoza@richmondland.com", ApproverType.RECOMMENDING),
    ("RLII-PROJ", "patricia.hernandez@richmondland.com", ApproverType.FINAL),
]


async def seed() -> None:
    await init_postgres_db()
    password = get_password_hash(os.environ.get("SEED_PASSWORD", "asdasd123"))

    async with get_session_maker()() as session:
        units = {}
        for code, name, description in BUSINESS_UNITS:
            result = await session.execute(select(BusinessUnit).where(BusinessUnit.code == code))
            unit = result.scalar_one_or_none()
            if unit is None:
                unit = BusinessUnit(id=str(uuid.uuid4()), code=code, name=name,
                                    description=description, is_active=True)
                session.add(unit)
            units[code] = unit

        departments = {}
        for unit_code, entries in DEPARTMENTS.items():
            for code, name, description in entries:
                result = await session.execute(select(Department).where(Department.code == code))
                department = result.scalar_one_or_none()
                if department is None:
                    department = Department(id=str(uuid.uuid4()), code=code, name=name,
                                            description=description,
                                            business_unit_id=units[unit_code].id, is_active=True)
                    session.add(department)
                departments[code] = department
        await session.flush()

        users = {}
        for first_name, last_name, email, role, department_code in USERS:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(
                    id=str(uuid.uuid4()),
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    password=password,
                    role=role.value,
                    is_active=True,
                    department_id=departments[department_code].id if department_code else None,
                )
                session.add(user)
            users[email] = user
        await session.flush()

        for department_code, email, approver_type in APPROVERS:
            department_id = departments[department_code].id
            user_id = users[email].id
            result = await session.execute(
                select(DepartmentApprover).where(
                    DepartmentApprover.department_id == department_id,
                    DepartmentApprover.user_id == user_id,
                    DepartmentApprover.approver_type == approver_type.value,
                )
            )
            if result.scalar_one_or_none() is None:
                session.add(DepartmentApprover(
                    id=str(uuid.uuid4()),
                    department_id=department_id,
                    user_id=user_id,
                    approver_type=approver_type.value,
                    is_active=True,
                ))

        await session.commit()

    logger.info(
        "Seed complete: %d business units, %d departments, %d users, %d approver assignments",
        len(BUSINESS_UNITS), len(departments), len(USERS), len(APPROVERS),
    )


async def main() -> None:
    try:
        await seed()
    finally:
        await close_postgres_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    asyncio.run(main())
