"""
Transaction Service

Business logic for transactions, transfers and category suggestions.
"""

import logging
import uuid
from datetime import date
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.config import settings
from spare_finance.api.db.models import (
    Account,
    Category,
    Subcategory,
    Transaction,
    User,
    utcnow,
)
from spare_finance.api.billing.plans import PlanService, has_feature
from spare_finance.api.categories.service import CategoryService
from spare_finance.api.categories.suggestion import normalize_description, suggest_category
from spare_finance.api.services.encryption import get_encryption_service
from spare_finance.api.transactions.csv_import import (
    CategoryRef,
    MappedRow,
    account_names,
    map_rows,
    read_csv,
)
from spare_finance.api.transactions.schemas import (
    CsvImportRequest,
    TransactionCreateRequest,
    TransactionUpdateRequest,
    TransferCreateRequest,
)

logger = logging.getLogger(__name__)

TRANSFER_OUT_DESCRIPTION = "Transfer to account"
TRANSFER_IN_DESCRIPTION = "Transfer from account"


class TransactionService:
    """Service for transaction operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.encryption = get_encryption_service()

    # ==================== Helpers ====================

    def set_description(self, tx: Transaction, text: Optional[str]) -> None:
        """Store the description encrypted, plus its normalized search form."""
        text = (text or "").strip() or None
        tx.description = self.encryption.encrypt_field(text)
        tx.description_search = normalize_description(text) or None

    def read_description(self, tx: Transaction) -> Optional[str]:
        return self.encryption.decrypt_field(tx.description)

    async def _get_owned_account(self, account_id: UUID, user_id: UUID) -> Account:
        account = await self.db.get(Account, account_id)
        if account is None:
            raise LookupError("Account not found")
        if account.user_id != user_id:
            raise PermissionError("Access denied to this account")
        return account

    async def get_linked(self, tx: Transaction) -> Optional[Transaction]:
        """The other side of a transfer, if any."""
        linked_id = tx.transfer_to_id or tx.transfer_from_id
        if linked_id is None:
            return None
        return await self.db.get(Transaction, linked_id)

    async def _with_linked(self, tx: Transaction) -> List[Transaction]:
        linked = await self.get_linked(tx)
        return [tx, linked] if linked is not None else [tx]

    # ==================== Create ====================

    async def create_transaction(
        self, user: User, data: TransactionCreateRequest
    ) -> Transaction:
        """
        Create an income or expense.

        Raises:
            LookupError: Account not found
            PermissionError: Account belongs to another user
            ValueError: Invalid category or monthly limit reached
        """
        await self._get_owned_account(data.account_id, user.id)
        await CategoryService(self.db).validate_selection(
            user.id, data.category_id, data.subcategory_id
        )
        await PlanService(self.db).consume_transaction_quota(user.id, data.date)

        tx = Transaction(
            user_id=user.id,
            account_id=data.account_id,
            type=data.type,
            amount=data.amount,
            date=data.date,
            category_id=data.category_id,
            subcategory_id=data.subcategory_id,
            expense_type=data.expense_type if data.type == "expense" else None,
            is_recurring=data.is_recurring,
            tags=data.tags,
        )
        self.set_description(tx, data.description)

        if data.category_id is None:
            suggestion = await suggest_category(
                self.db, user.id, data.description, data.amount, data.type
            )
            if suggestion is not None:
                tx.suggested_category_id = suggestion.category_id
                tx.suggested_subcategory_id = suggestion.subcategory_id

        self.db.add(tx)
        await self.db.commit()
        await self.db.refresh(tx)

        logger.info("Created %s transaction %s for user %s", tx.type, tx.id, user.id)
        return tx

    async def create_transfer(
        self, user: User, data: TransferCreateRequest
    ) -> Tuple[Transaction, Transaction]:
        """
        Create the two linked rows of a transfer.

        Counts as a single transaction toward the monthly limit.
        """
        if data.from_account_id == data.to_account_id:
            raise ValueError("Source and destination accounts must differ")
        await self._get_owned_account(data.from_account_id, user.id)
        await self._get_owned_account(data.to_account_id, user.id)
        await PlanService(self.db).consume_transaction_quota(user.id, data.date)

        outgoing_id = uuid.uuid4()
        incoming_id = uuid.uuid4()

        outgoing = Transaction(
            id=outgoing_id,
            user_id=user.id,
            account_id=data.from_account_id,
            type="expense",
            amount=data.amount,
            date=data.date,
            transfer_to_id=incoming_id,
            tags=[],
        )
        incoming = Transaction(
            id=incoming_id,
            user_id=user.id,
            account_id=data.to_account_id,
            type="income",
            amount=data.amount,
            date=data.date,
            transfer_from_id=outgoing_id,
            tags=[],
        )
        self.set_description(outgoing, data.description or TRANSFER_OUT_DESCRIPTION)
        self.set_description(incoming, data.description or TRANSFER_IN_DESCRIPTION)

        self.db.add_all([outgoing, incoming])
        await self.db.commit()
        await self.db.refresh(outgoing)
        await self.db.refresh(incoming)

        logger.info(
            "Created transfer %s -> %s (%s) for user %s",
            data.from_account_id, data.to_account_id, data.amount, user.id,
        )
        return outgoing, incoming

    # ==================== Query ====================

    async def list_transactions(
        self,
        user_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        type: Optional[str] = None,
        search: Optional[str] = None,
        deleted: bool = False,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Transaction], int]:
        """Filtered, paginated transactions, newest first."""
        conditions = [Transaction.user_id == user_id]

        if deleted:
            conditions.append(Transaction.deleted_at.is_not(None))
        else:
            conditions.append(Transaction.deleted_at.is_(None))
        if start_date:
            conditions.append(Transaction.date >= start_date)
        if end_date:
            conditions.append(Transaction.date <= end_date)
        if account_id:
            conditions.append(Transaction.account_id == account_id)
        if category_id:
            conditions.append(Transaction.category_id == category_id)
        if type == "transfer":
            conditions.append(
                or_(
                    Transaction.transfer_to_id.is_not(None),
                    Transaction.transfer_from_id.is_not(None),
                )
            )
        elif type:
            conditions.append(Transaction.type == type)
        if search:
            term = normalize_description(search)
            if term:
                conditions.append(Transaction.description_search.contains(term, autoescape=True))

        total = (
            await self.db.execute(select(func.count(Transaction.id)).where(*conditions))
        ).scalar() or 0

        result = await self.db.execute(
            select(Transaction)
            .where(*conditions)
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    # ==================== Update ====================

    async def update_transaction(
        self, user: User, tx: Transaction, data: TransactionUpdateRequest
    ) -> Transaction:
        """
        Update a transaction.

        Amount and date changes on a transfer are mirrored to the other side.

        Raises:
            ValueError: Category on a transfer, or invalid category
        """
        changes = data.model_dump(exclude_unset=True)

        if tx.is_transfer:
            if {"category_id", "subcategory_id", "expense_type", "account_id"} & changes.keys():
                raise ValueError("Transfers only allow amount, date and description changes")
            for side in await self._with_linked(tx):
                if "amount" in changes:
                    side.amount = changes["amount"]
                if "date" in changes:
                    side.date = changes["date"]
            if "description" in changes:
                self.set_description(tx, changes["description"])
            await self.db.commit()
            await self.db.refresh(tx)
            return tx

        if "account_id" in changes:
            await self._get_owned_account(changes["account_id"], user.id)

        if "category_id" in changes or "subcategory_id" in changes:
            category_id = changes.get("category_id", tx.category_id)
            subcategory_id = changes.get("subcategory_id", tx.subcategory_id)
            if "category_id" in changes and "subcategory_id" not in changes:
                subcategory_id = None
            await CategoryService(self.db).validate_selection(
                user.id, category_id, subcategory_id
            )
            tx.category_id = category_id
            tx.subcategory_id = subcategory_id
            if category_id is not None:
                tx.suggested_category_id = None
                tx.suggested_subcategory_id = None

        if "description" in changes:
            self.set_description(tx, changes["description"])

        for field in ("account_id", "amount", "date", "is_recurring", "tags"):
            if field in changes and changes[field] is not None:
                setattr(tx, field, changes[field])

        if "expense_type" in changes:
            tx.expense_type = changes["expense_type"] if tx.type == "expense" else None

        await self.db.commit()
        await self.db.refresh(tx)
        return tx

    # ==================== Delete ====================

    async def soft_delete(self, tx: Transaction) -> int:
        """Mark as deleted, together with the other side of a transfer."""
        now = utcnow()
        sides = await self._with_linked(tx)
        for side in sides:
            side.deleted_at = now
        await self.db.commit()
        return len(sides)

    async def restore(self, tx: Transaction) -> Transaction:
        for side in await self._with_linked(tx):
            side.deleted_at = None
        await self.db.commit()
        await self.db.refresh(tx)
        return tx

    async def hard_delete(self, tx: Transaction) -> int:
        sides = await self._with_linked(tx)
        for side in sides:
            await self.db.delete(side)
        await self.db.commit()
        return len(sides)

    async def bulk_delete(
        self, user_id: UUID, ids: Sequence[UUID], permanent: bool = False
    ) -> int:
        """
        Delete many transactions at once. Ids of other users are ignored.

        Returns:
            Number of rows affected, transfer counterparts included
        """
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.id.in_(list(ids)),
                Transaction.user_id == user_id,
            )
        )
        targets = {tx.id: tx for tx in result.scalars().all()}
        for tx in list(targets.values()):
            linked = await self.get_linked(tx)
            if linked is not None and linked.user_id == user_id:
                targets.setdefault(linked.id, linked)

        now = utcnow()
        for tx in targets.values():
            if permanent:
                await self.db.delete(tx)
            else:
                tx.deleted_at = now
        await self.db.commit()

        logger.info("Bulk deleted %d transactions for user %s", len(targets), user_id)
        return len(targets)

    # ==================== Suggestions ====================

    async def apply_suggestion(self, tx: Transaction) -> Transaction:
        """
        Raises:
            ValueError: If there is no pending suggestion
        """
        if tx.suggested_category_id is None:
            raise ValueError("No category suggestion to apply")
        tx.category_id = tx.suggested_category_id
        tx.subcategory_id = tx.suggested_subcategory_id
        tx.suggested_category_id = None
        tx.suggested_subcategory_id = None
        await self.db.commit()
        await self.db.refresh(tx)
        return tx

    async def reject_suggestion(self, tx: Transaction) -> Transaction:
        tx.suggested_category_id = None
        tx.suggested_subcategory_id = None
        await self.db.commit()
        await self.db.refresh(tx)
        return tx

    # ==================== CSV Import ====================

    async def _import_targets(self, user_id: UUID) -> Tuple[List[Account], List[CategoryRef]]:
        """The user's accounts and the categories they can assign, by name."""
        accounts = await self.db.execute(
            select(Account).where(Account.user_id == user_id).order_by(Account.created_at)
        )
        visible = or_(Category.user_id.is_(None), Category.user_id == user_id)
        categories = (await self.db.execute(select(Category).where(visible))).scalars().all()
        subcategories = await self.db.execute(
            select(Subcategory).where(
                or_(Subcategory.user_id.is_(None), Subcategory.user_id == user_id)
            )
        )

        # User categories win over system ones with the same name
        refs = {}
        for category in sorted(categories, key=lambda c: c.user_id is not None):
            refs[category.id] = CategoryRef(category.id, category.name)
        for sub in subcategories.scalars().all():
            ref = refs.get(sub.category_id)
            if ref is not None:
                ref.subcategories[sub.name] = sub.id
        return list(accounts.scalars().all()), list(refs.values())

    async def check_csv_import(self, user_id: UUID) -> None:
        """
        Raises:
            PermissionError: The user's plan does not include CSV import
        """
        plan = await PlanService(self.db).get_current_plan(user_id)
        if not has_feature(plan, "has_csv_import"):
            raise PermissionError("CSV import is not available in your current plan")

    async def map_csv(
        self, user_id: UUID, data: CsvImportRequest
    ) -> Tuple[List[str], List[str], List[MappedRow]]:
        """
        Parse and map a CSV upload without writing anything.

        Returns:
            (columns, account names found in the file, mapped rows)

        Raises:
            ValueError: Unparseable CSV, no rows, too many rows or a mapped
                column missing from the header
        """
        frame = read_csv(data.csv)
        if frame.empty:
            raise ValueError("No transactions provided")
        limit = settings.CSV_IMPORT_MAX_ROWS
        if len(frame) > limit:
            raise ValueError(f"CSV import is limited to {limit} rows")

        columns = list(frame.columns)
        missing = [c for c in data.mapping.model_dump().values() if c and c not in columns]
        if missing:
            raise ValueError(f"Columns not found in CSV: {', '.join(missing)}")

        accounts, categories = await self._import_targets(user_id)
        rows = map_rows(
            frame,
            data.mapping,
            accounts,
            categories,
            account_mapping=data.account_mapping,
            default_account_id=data.default_account_id,
        )
        return columns, account_names(frame, data.mapping.account), rows

    async def import_csv(
        self, user: User, data: CsvImportRequest
    ) -> Tuple[int, List[Tuple[int, str]]]:
        """
        Create a transaction for every mappable row.

        Rows that fail mapping or creation are reported and skipped; the
        rows before and after them are still imported. Each transfer row
        creates both linked sides.

        Returns:
            (imported count, [(row_index, error), ...])
        """
        await self.check_csv_import(user.id)
        _, _, rows = await self.map_csv(user.id, data)

        imported = 0
        errors = []
        for row in rows:
            if row.error is not None:
                errors.append((row.row_index, row.error))
                continue
            item = row.transaction
            try:
                if item.type == "transfer":
                    await self.create_transfer(
                        user,
                        TransferCreateRequest(
                            from_account_id=item.account_id,
                            to_account_id=item.to_account_id,
                            amount=item.amount,
                            date=item.date,
                            description=item.description or None,
                        ),
                    )
                else:
                    await self.create_transaction(
                        user,
                        TransactionCreateRequest(
                            account_id=item.account_id,
                            type=item.type,
                            amount=item.amount,
                            date=item.date,
                            description=item.description or None,
                            category_id=item.category_id,
                            subcategory_id=item.subcategory_id,
                        ),
                    )
            except (LookupError, PermissionError, ValueError) as e:
                errors.append((row.row_index, str(e)))
                continue
            imported += 1

        logger.info(
            "Imported %d of %d CSV rows for user %s", imported, len(rows), user.id
        )
        return imported, errors
