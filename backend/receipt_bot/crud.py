from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from .config import get_settings
from .models import CategoryModel, ExpenseItemModel, ExpenseModel, UserModel, VerificationStatus
from .schemas import ExpenseCorrections, ExpenseCreate

settings = get_settings()

DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("Food", "🍔"),
    ("Grocery", "🛒"),
    ("Transport", "🚕"),
    ("Housing", "🏠"),
    ("Utilities", "💡"),
    ("Health", "💊"),
    ("Entertainment", "🎬"),
    ("Shopping", "🛍"),
    ("Travel", "✈️"),
    ("Other", "📦"),
]


def get_user_by_telegram_id(db: Session, telegram_id: str) -> UserModel | None:
    return db.scalar(select(UserModel).where(UserModel.telegram_id == telegram_id))


def get_or_create_user(
    db: Session,
    telegram_id: str,
    username: str | None = None,
    language: str | None = None,
) -> tuple[UserModel, bool]:
    user = get_user_by_telegram_id(db, telegram_id)
    if user:
        changed = False
        if username and user.username != username:
            user.username = username
            changed = True
        if changed:
            db.commit()
            db.refresh(user)
        return user, False

    user = UserModel(
        telegram_id=telegram_id,
        username=username,
        language=language or "en",
        default_currency=settings.default_currency,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, True


def seed_default_categories(db: Session) -> int:
    existing = set(
        db.scalars(select(CategoryModel.name).where(CategoryModel.is_system.is_(True)))
    )
    created = 0
    for name, icon in DEFAULT_CATEGORIES:
        if name in existing:
            continue
        db.add(CategoryModel(name=name, icon=icon, is_system=True, user_id=None))
        created += 1
    if created:
        db.commit()
    return created


def list_categories(db: Session, user_id: int | None) -> list[CategoryModel]:
    stmt = select(CategoryModel).where(
        or_(CategoryModel.is_system.is_(True), CategoryModel.user_id == user_id)
    )
    return list(db.scalars(stmt.order_by(CategoryModel.name, CategoryModel.id)))


def get_category(db: Session, category_id: int) -> CategoryModel | None:
    return db.get(CategoryModel, category_id)


def create_expense(db: Session, data: ExpenseCreate) -> ExpenseModel:
    expense = ExpenseModel(
        user_id=data.user_id,
        amount=data.amount,
        currency=data.currency.upper(),
        expense_date=data.expense_date,
        merchant_name=data.merchant_name,
        description=data.description,
        category_id=data.category_id,
        data_source=data.data_source,
        needs_review=data.needs_review,
        review_hint=data.review_hint,
        verification_status=VerificationStatus.VERIFIED if data.verified else VerificationStatus.PENDING,
        verified_by_user=data.verified,
        items=[
            ExpenseItemModel(product_name=item.product_name, amount=item.amount, quantity=item.quantity)
            for item in data.items
        ],
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    return expense


def get_expense(db: Session, expense_id: int, user_id: int) -> ExpenseModel | None:
    stmt = select(ExpenseModel).where(ExpenseModel.id == expense_id, ExpenseModel.user_id == user_id)
    return db.scalar(stmt)


def update_expense(db: Session, expense: ExpenseModel, corrections: ExpenseCorrections) -> ExpenseModel:
    """Apply user corrections and mark the expense as verified by its owner."""
    changes = corrections.model_dump(exclude_unset=True, exclude_none=True)
    changes.update(
        verification_status=VerificationStatus.VERIFIED,
        verified_by_user=True,
        needs_review=False,
    )
    stmt = (
        update(ExpenseModel)
        .where(ExpenseModel.id == expense.id)
        .values(**changes)
        .execution_options(synchronize_session="fetch")
    )
    db.execute(stmt)
    db.commit()
    db.refresh(expense)
    return expense
