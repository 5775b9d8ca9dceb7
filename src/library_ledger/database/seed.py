"""
Sample data for the Library Ledger.

Generates a small, realistic library with Faker: a catalog, registered
members, a loan history and a visit log. The generated loans are applied to
the copy counters as they are created, so a freshly seeded database passes
``LoanLedger.audit_availability()`` with no drift.
"""

import logging
import random
from datetime import date, datetime, time, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from ..models.loan import overdue_cutoff
from .schema import (
    Book,
    Loan,
    LoanStatusEnum,
    Member,
    MemberCategoryEnum,
    Visit,
    Visitor,
    VisitorCategoryEnum,
    VisitPurposeEnum,
)

logger = logging.getLogger(__name__)

CATEGORIES = ["Fiction", "History", "Science", "Religion", "Children", "Reference", "Technology"]
RELIGIONS = ["Islam", "Kristen", "Katolik", "Hindu", "Buddha", "Konghucu"]
LOAN_DAYS = 7
FINE_PER_DAY = 0.5


def generate_books(fake: Faker, rng: random.Random, num_books: int = 40) -> list[Book]:
    """Catalog entries with every copy on the shelf."""
    books = []
    per_category: dict[str, int] = {}

    for _ in range(num_books):
        category = rng.choice(CATEGORIES)
        per_category[category] = per_category.get(category, 0) + 1
        total = rng.randint(1, 5)

        books.append(
            Book(
                title=fake.sentence(nb_words=rng.randint(2, 5)).rstrip("."),
                author=fake.name(),
                category=category,
                book_code=f"{category[:3].upper()}-{per_category[category]:03d}",
                total_copies=total,
                available_copies=total,
                added_date=fake.date_time_between(start_date="-3y", end_date="-1y"),
            )
        )

    return books


def generate_members(fake: Faker, rng: random.Random, num_members: int = 25) -> list[Member]:
    """Registered members, roughly half of them students."""
    members = []
    for _ in range(num_members):
        is_student = rng.random() < 0.5
        members.append(
            Member(
                name=fake.name(),
                birth_place=fake.city(),
                birth_date=fake.date_of_birth(
                    minimum_age=7 if is_student else 18,
                    maximum_age=22 if is_student else 80,
                ),
                address=fake.address().replace("\n", ", "),
                religion=rng.choice(RELIGIONS),
                gender=rng.choice(["male", "female"]),
                phone=fake.numerify("08##-####-####"),
                category=MemberCategoryEnum.STUDENT if is_student else MemberCategoryEnum.GENERAL,
                created_at=fake.date_time_between(start_date="-2y", end_date="-6M"),
            )
        )
    return members


def generate_loans(
    fake: Faker,
    rng: random.Random,
    members: list[Member],
    books: list[Book],
    num_loans: int = 120,
) -> list[Loan]:
    """
    A loan history: mostly returned loans plus some still borrowed.

    Borrowed loans take a copy off the shelf of their book; a book with no
    copy left is skipped.
    """
    loans = []

    for _ in range(int(num_loans * 0.8)):
        loan_date = fake.date_time_between(start_date="-6M", end_date="-1M")
        due_date = loan_date.date() + timedelta(days=LOAN_DAYS)
        late_days = rng.choice([0, 0, 0, 0, 1, 2, 5])
        returned_at = loan_date + timedelta(days=rng.randint(1, LOAN_DAYS) + late_days)

        loans.append(
            Loan(
                member_id=rng.choice(members).id,
                book_id=rng.choice(books).id,
                loan_date=loan_date,
                return_date=due_date,
                actual_return_date=returned_at,
                status=LoanStatusEnum.RETURNED,
                fine=max(0, (returned_at.date() - due_date).days) * FINE_PER_DAY,
            )
        )

    for _ in range(int(num_loans * 0.2)):
        book = rng.choice(books)
        if book.available_copies <= 0:
            continue

        loan_date = fake.date_time_between(start_date="-3w", end_date="now")
        book.available_copies -= 1
        loans.append(
            Loan(
                member_id=rng.choice(members).id,
                book_id=book.id,
                loan_date=loan_date,
                return_date=loan_date.date() + timedelta(days=LOAN_DAYS),
                status=LoanStatusEnum.BORROWED,
                fine=0.0,
            )
        )

    cutoff = overdue_cutoff()
    overdue = sum(
        1 for loan in loans if loan.status == LoanStatusEnum.BORROWED and loan.return_date < cutoff
    )
    logger.debug("Generated %d loans (%d overdue)", len(loans), overdue)
    return loans


def generate_visits(
    fake: Faker,
    rng: random.Random,
    members: list[Member],
    num_visits: int = 150,
) -> tuple[list[Visitor], list[Visit]]:
    """Walk-in visitors and a visit log over the last two months."""
    visitors = [
        Visitor(
            name=fake.name(),
            address=fake.address().replace("\n", ", "),
            category=rng.choice(list(VisitorCategoryEnum)),
        )
        for _ in range(max(1, num_visits // 5))
    ]

    visits = []
    today = date.today()
    for _ in range(num_visits):
        visit_date = fake.date_between(start_date="-60d", end_date="today")
        checkin = datetime.combine(
            visit_date, time(hour=rng.randint(8, 15), minute=rng.randint(0, 59))
        )
        # today's guests may still be inside
        if visit_date == today and rng.random() < 0.5:
            checkout = None
        else:
            checkout = checkin + timedelta(minutes=rng.randint(15, 180))

        guest = (
            {"member_id": rng.choice(members).id}
            if rng.random() < 0.6
            else {"visitor_id": rng.choice(visitors).id}
        )
        visits.append(
            Visit(
                visit_date=visit_date,
                checkin_time=checkin,
                checkout_time=checkout,
                purpose=rng.choice(list(VisitPurposeEnum)),
                **guest,
            )
        )

    return visitors, visits


def seed_database(
    session: Session,
    num_books: int = 40,
    num_members: int = 25,
    num_loans: int = 120,
    num_visits: int = 150,
    seed: int = 42,
) -> dict[str, int]:
    """
    Fill an empty database with sample data.

    Args:
        session: Session bound to a database whose tables exist
        seed: Seed for Faker and the random choices, for repeatable data

    Returns:
        Number of rows created per table
    """
    fake = Faker("id_ID")
    fake.seed_instance(seed)
    rng = random.Random(seed)

    books = generate_books(fake, rng, num_books)
    members = generate_members(fake, rng, num_members)
    session.add_all(books + members)
    session.flush()

    loans = generate_loans(fake, rng, members, books, num_loans)
    session.add_all(loans)
    session.flush()

    visitors, visits = generate_visits(fake, rng, members, num_visits)
    session.add_all(visitors)
    session.flush()
    session.add_all(visits)

    session.commit()

    summary = {
        "books": len(books),
        "members": len(members),
        "loans": len(loans),
        "visitors": len(visitors),
        "visits": len(visits),
    }
    logger.info("Seeded sample data: %s", summary)
    return summary
