"""
Seed a development database with a super admin, departments, staff, classes,
students, ten days of attendance and a few messages.

Run after migrations:
  python -m app.db.seed

Safe to run repeatedly: rows are looked up by email, roll number or name and
only created when missing. Sample attendance and messages are added only when
the seeded students have none yet.
"""
import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.security import hash_password
from app.core.config import settings
from app.core.logging import configure_logging
from app.core.models import Attendance, Department, Message, SchoolClass, StaffClass
from app.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

ADMIN_NAME = "Dr. College Administrator"
STAFF_PASSWORD = "Staff@123"
STUDENT_PASSWORD = "Student@123"
ATTENDANCE_DAYS = 10

DEPARTMENTS = [
    (
        "Computer Science & Engineering",
        "Software development, algorithms and emerging technologies.",
    ),
    ("Information Technology", "IT infrastructure, systems management and digital solutions."),
    (
        "Electronics & Communication Engineering",
        "Digital systems, telecommunications and embedded systems.",
    ),
    ("Mechanical Engineering", "Design, manufacturing and thermal systems."),
    ("Civil Engineering", "Structural design, construction management and infrastructure."),
]

# (name, email, department index)
STAFF = [
    ("Dr. Rajesh Kumar", "rajesh.kumar@college.com", 0),
    ("Prof. Priya Sharma", "priya.sharma@college.com", 0),
    ("Dr. Arjun Patel", "arjun.patel@college.com", 1),
    ("Prof. Sneha Reddy", "sneha.reddy@college.com", 1),
    ("Dr. Vikram Singh", "vikram.singh@college.com", 2),
    ("Dr. Anil Gupta", "anil.gupta@college.com", 3),
    ("Dr. Sunil Mehta", "sunil.mehta@college.com", 4),
    ("Dr. Neha Verma", "neha.verma@college.com", 0),
]

# (class name, staff email, department index)
CLASSES = [
    ("BCA First Year", "rajesh.kumar@college.com", 0),
    ("BCA Second Year", "priya.sharma@college.com", 0),
    ("B.Tech CSE First Year", "rajesh.kumar@college.com", 0),
    ("B.Tech CSE Second Year", "priya.sharma@college.com", 0),
    ("B.Tech IT First Year", "arjun.patel@college.com", 1),
    ("B.Tech IT Second Year", "sneha.reddy@college.com", 1),
    ("MCA First Year", "rajesh.kumar@college.com", 0),
    ("B.Tech ECE First Year", "vikram.singh@college.com", 2),
    ("B.Tech ECE Second Year", "vikram.singh@college.com", 2),
    ("B.Tech ME First Year", "anil.gupta@college.com", 3),
    ("B.Tech CE First Year", "sunil.mehta@college.com", 4),
    ("B.Tech AI First Year", "neha.verma@college.com", 0),
]

# (name, roll number, class name)
STUDENTS = [
    ("Aarav Sharma", "CS001", "BCA First Year"),
    ("Aditi Patel", "CS002", "BCA First Year"),
    ("Rohan Kumar", "CS003", "BCA Second Year"),
    ("Sneha Iyer", "CS004", "BCA Second Year"),
    ("Vikram Rao", "CS005", "B.Tech CSE First Year"),
    ("Priya Gupta", "CS006", "B.Tech CSE First Year"),
    ("Arjun Mehta", "IT001", "B.Tech IT First Year"),
    ("Neha Kapoor", "IT002", "B.Tech IT First Year"),
    ("Raj Malhotra", "IT003", "B.Tech IT Second Year"),
    ("Pooja Joshi", "IT004", "B.Tech IT Second Year"),
    ("Suresh Nair", "CS007", "MCA First Year"),
    ("Kiran Desai", "EC001", "B.Tech ECE First Year"),
    ("Manoj Tiwari", "EC002", "B.Tech ECE First Year"),
    ("Anjali Choudhary", "EC003", "B.Tech ECE Second Year"),
    ("Rahul Dube", "ME001", "B.Tech ME First Year"),
    ("Sanjay Rao", "ME002", "B.Tech ME First Year"),
    ("Deepak Iyer", "CE001", "B.Tech CE First Year"),
    ("Meera Krishnan", "CE002", "B.Tech CE First Year"),
    ("Amitabh Roy", "AI001", "B.Tech AI First Year"),
    ("Divya Menon", "AI002", "B.Tech AI First Year"),
]

MESSAGES = [
    ("rajesh.kumar@college.com", "CS001", "Your last assignment was excellent. Keep up the good work!"),
    ("rajesh.kumar@college.com", "CS002", "Please submit your pending project report by tomorrow."),
    ("priya.sharma@college.com", "CS003", "Database lab session is rescheduled to Thursday 2 PM. Bring your laptops."),
    ("arjun.patel@college.com", "IT001", "Great job on your presentation today!"),
]


def _email_for(name: str) -> str:
    return ".".join(name.lower().split()) + "@student.com"


async def _user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def seed_admin(db: AsyncSession) -> User:
    admin = await _user_by_email(db, settings.seed_admin_email.lower())
    if admin:
        logger.info("Super admin already exists")
        return admin
    admin = User(
        name=ADMIN_NAME,
        email=settings.seed_admin_email.lower(),
        password_hash=hash_password(settings.seed_admin_password),
        role="SUPER_ADMIN",
    )
    db.add(admin)
    await db.flush()
    logger.info(f"Created super admin {admin.email}")
    return admin


async def seed_departments(db: AsyncSession) -> List[Department]:
    departments = []
    for name, description in DEPARTMENTS:
        result = await db.execute(select(Department).where(Department.name == name))
        dept = result.scalar_one_or_none()
        if not dept:
            dept = Department(name=name, description=description)
            db.add(dept)
            await db.flush()
            logger.info(f"Created department {name}")
        departments.append(dept)
    return departments


async def seed_staff(db: AsyncSession, departments: List[Department]) -> Dict[str, User]:
    staff = {}
    for name, email, dept_index in STAFF:
        user = await _user_by_email(db, email)
        if not user:
            user = User(
                name=name,
                email=email,
                password_hash=hash_password(STAFF_PASSWORD),
                role="STAFF",
                department_id=departments[dept_index].id,
            )
            db.add(user)
            await db.flush()
            logger.info(f"Created staff {email}")
        staff[email] = user
    return staff


async def seed_classes(
    db: AsyncSession, departments: List[Department], staff: Dict[str, User], admin: User
) -> Dict[str, SchoolClass]:
    classes = {}
    for name, staff_email, dept_index in CLASSES:
        result = await db.execute(select(SchoolClass).where(SchoolClass.name == name))
        cls = result.scalar_one_or_none()
        if not cls:
            cls = SchoolClass(name=name, staff_id=staff[staff_email].id, department_id=departments[dept_index].id)
            db.add(cls)
            await db.flush()
            logger.info(f"Created class {name}")
        link = await db.execute(
            select(StaffClass.id).where(StaffClass.staff_id == cls.staff_id, StaffClass.class_id == cls.id)
        )
        if cls.staff_id and not link.first():
            db.add(StaffClass(staff_id=cls.staff_id, class_id=cls.id, assigned_by=admin.id))
        classes[name] = cls
    await db.flush()
    return classes


async def seed_students(db: AsyncSession, classes: Dict[str, SchoolClass]) -> List[User]:
    students = []
    for name, roll_number, class_name in STUDENTS:
        result = await db.execute(select(User).where(User.roll_number == roll_number))
        student = result.scalar_one_or_none()
        if not student:
            cls = classes[class_name]
            email = _email_for(name)
            student = User(
                name=name,
                email=email,
                password_hash=hash_password(STUDENT_PASSWORD),
                role="STUDENT",
                roll_number=roll_number,
                parent_email=email.replace("@student.com", ".parent@example.com"),
                class_id=cls.id,
                department_id=cls.department_id,
            )
            db.add(student)
            await db.flush()
            logger.info(f"Created student {roll_number}")
        students.append(student)
    return students


async def seed_attendance(db: AsyncSession, students: List[User], classes: Dict[str, SchoolClass]) -> None:
    ids = [s.id for s in students]
    existing = (await db.execute(select(func.count(Attendance.id)).where(Attendance.student_id.in_(ids)))).scalar_one()
    if existing:
        logger.info("Sample attendance already present")
        return
    teacher_by_class = {c.id: c.staff_id for c in classes.values()}
    rng = random.Random(42)
    today = datetime.utcnow().date()
    for offset in range(ATTENDANCE_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        for student in students:
            status = "PRESENT" if rng.random() > 0.2 else "ABSENT"
            db.add(
                Attendance(
                    student_id=student.id,
                    staff_id=teacher_by_class.get(student.class_id),
                    date=day,
                    status=status,
                    remarks="No reason provided" if status == "ABSENT" else None,
                )
            )
    logger.info(f"Created {ATTENDANCE_DAYS} days of attendance for {len(students)} students")


async def seed_messages(db: AsyncSession, staff: Dict[str, User], students: List[User], admin: User) -> None:
    by_roll = {s.roll_number: s for s in students}
    existing = (
        await db.execute(select(func.count(Message.id)).where(Message.student_id.in_([s.id for s in students])))
    ).scalar_one()
    if existing:
        logger.info("Sample messages already present")
        return
    for staff_email, roll_number, content in MESSAGES:
        db.add(Message(content=content, student_id=by_roll[roll_number].id, staff_id=staff[staff_email].id))
    for student in students:
        db.add(
            Message(
                content="Library will have extended hours during exams (8 AM - 10 PM).",
                student_id=student.id,
                staff_id=admin.id,
                is_announcement=True,
                message_type="ALL_STUDENTS",
            )
        )
    logger.info("Created sample messages")


async def seed(db: AsyncSession) -> None:
    admin = await seed_admin(db)
    departments = await seed_departments(db)
    staff = await seed_staff(db, departments)
    classes = await seed_classes(db, departments, staff, admin)
    students = await seed_students(db, classes)
    await seed_attendance(db, students, classes)
    await seed_messages(db, staff, students, admin)
    await db.commit()
    logger.info(f"Seed complete. Super admin: {admin.email}")


async def main() -> None:
    configure_logging()
    async with AsyncSessionLocal() as db:
        await seed(db)


if __name__ == "__main__":
    asyncio.run(main())
