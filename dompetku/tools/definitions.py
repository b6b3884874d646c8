"""
Tool Definitions

Binds the ledger and wallet services into the catalog as the fixed
tool set the agent can call.

Each tool declares its arguments as a pydantic model. The model's JSON
schema is trimmed to the subset Gemini function declarations accept,
and the same model validates the arguments before the service runs.
A bad argument therefore fails as VALIDATION_ERROR at the catalog
boundary instead of deep inside a service.
"""

from datetime import date
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dompetku.config import WalletSettings
from dompetku.models.ledger import BudgetPeriod, ExpenseItem, ReportPeriod
from dompetku.models.tools import ExecutionResult, ToolDefinition
from dompetku.services.ledger import (
    BudgetService,
    CategoryService,
    ExpenseService,
    IncomeService,
    MemoryService,
    ReportService,
)
from dompetku.services.storage import LedgerStorageInterface
from dompetku.services.wallet import VoucherService, WalletService
from dompetku.tools.catalog import ToolCatalog


_SCHEMA_KEYS = ("type", "description", "enum", "nullable")


def gemini_schema(model: type[BaseModel]) -> dict[str, Any]:
    """
    JSON schema of `model` reduced to what Gemini function calling accepts.

    $ref is inlined, Optional[X] becomes X with nullable=true, and
    title/default/format/bounds are dropped.
    """
    schema = model.model_json_schema()
    defs = schema.get("$defs", {})

    def clean(node: dict[str, Any]) -> dict[str, Any]:
        if "$ref" in node:
            resolved = clean(defs[node["$ref"].split("/")[-1]])
            if "description" in node:
                resolved["description"] = node["description"]
            return resolved

        if "anyOf" in node:
            options = [opt for opt in node["anyOf"] if opt.get("type") != "null"]
            out = clean(options[0]) if options else {"type": "string"}
            if len(options) < len(node["anyOf"]):
                out["nullable"] = True
            if "description" in node:
                out["description"] = node["description"]
            return out

        out = {key: node[key] for key in _SCHEMA_KEYS if key in node}
        if "properties" in node:
            out["properties"] = {
                name: clean(prop) for name, prop in node["properties"].items()
            }
            if node.get("required"):
                out["required"] = list(node["required"])
        if "items" in node:
            out["items"] = clean(node["items"])
        return out

    return clean(schema)


class ToolArgs(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class ExpenseItemArgs(ToolArgs):
    name: str = Field(..., min_length=1, description="Item name, e.g. 'kopi susu'")
    quantity: float = Field(default=1, gt=0, description="How many units")
    unit_price: float = Field(..., ge=0, description="Price per unit in Rupiah")


class CreateExpenseArgs(ToolArgs):
    amount: float = Field(..., gt=0, description="Total amount in Rupiah (25rb = 25000)")
    description: str = Field(..., min_length=1, description="What was bought, e.g. 'kopi'")
    category: Optional[str] = Field(
        default=None,
        description="Category name, e.g. makanan-minuman, transportasi, tagihan, belanja",
    )
    items: Optional[list[ExpenseItemArgs]] = Field(
        default=None,
        description="Line items when the user lists several things",
    )
    calculation_expression: Optional[str] = Field(
        default=None,
        description="How the amount was computed, e.g. '5 x 12000'",
    )


class EditExpenseArgs(ToolArgs):
    expense_id: Optional[str] = Field(
        default=None,
        description="Transaction id; omit to edit the most recent expense",
    )
    amount: Optional[float] = Field(default=None, gt=0, description="New amount in Rupiah")
    description: Optional[str] = Field(default=None, description="New description")
    category: Optional[str] = Field(default=None, description="New category name")


class DeleteExpenseArgs(ToolArgs):
    expense_id: str = Field(..., min_length=1, description="Transaction id to delete")


class ListExpensesArgs(ToolArgs):
    start_date: Optional[date] = Field(default=None, description="First day, YYYY-MM-DD")
    end_date: Optional[date] = Field(default=None, description="Last day, YYYY-MM-DD")
    category: Optional[str] = Field(default=None, description="Only this category")


class CreateIncomeArgs(ToolArgs):
    amount: float = Field(..., gt=0, description="Amount in Rupiah (5 juta = 5000000)")
    description: str = Field(..., min_length=1, description="What the income was, e.g. 'gaji'")
    source: Optional[str] = Field(
        default=None,
        description="Income source: gaji, bonus, freelance, penjualan, lainnya",
    )


class SetBudgetArgs(ToolArgs):
    category_name: str = Field(..., min_length=1, description="Category the budget applies to")
    amount: float = Field(..., gt=0, description="Budget limit in Rupiah")
    period: BudgetPeriod = Field(default=BudgetPeriod.MONTHLY, description="Budget period")


class CheckBudgetArgs(ToolArgs):
    category_name: Optional[str] = Field(
        default=None, description="Only this category; omit for all budgets"
    )


class AddBalanceArgs(ToolArgs):
    amount: float = Field(..., gt=0, description="Top-up amount in Rupiah")


class RedeemVoucherArgs(ToolArgs):
    code: str = Field(..., min_length=1, description="Voucher code")


class CategoryAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"


class ManageCategoryArgs(ToolArgs):
    action: CategoryAction = Field(..., description="What to do with the category")
    name: Optional[str] = Field(default=None, description="Category name")
    new_name: Optional[str] = Field(default=None, description="New name, for update")

    @model_validator(mode='after')
    def validate_names(self) -> 'ManageCategoryArgs':
        if self.action != CategoryAction.LIST and not self.name:
            raise ValueError(f"'name' is required to {self.action.value} a category")
        if self.action == CategoryAction.UPDATE and not self.new_name:
            raise ValueError("'new_name' is required to update a category")
        return self


class GenerateReportArgs(ToolArgs):
    period: ReportPeriod = Field(default=ReportPeriod.MONTHLY, description="Report period")


class SaveMemoryArgs(ToolArgs):
    key: str = Field(..., min_length=1, description="Short key, e.g. 'kopi favorit'")
    value: str = Field(..., min_length=1, description="What to remember")


class GetMemoryArgs(ToolArgs):
    key: Optional[str] = Field(default=None, description="Key to look up; omit to list all")


class DeleteMemoryArgs(ToolArgs):
    key: str = Field(..., min_length=1, description="Key to forget")


class HelpArgs(ToolArgs):
    topic: Optional[str] = Field(
        default=None,
        description="pengeluaran, pemasukan, budget, laporan or koin",
    )


class LedgerServices:
    """The domain services the tools are bound to."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        wallet_settings: Optional[WalletSettings] = None,
    ):
        self.storage = storage
        self.categories = CategoryService(storage)
        self.expenses = ExpenseService(storage, self.categories)
        self.incomes = IncomeService(storage)
        self.budgets = BudgetService(storage, self.categories)
        self.memories = MemoryService(storage)
        self.reports = ReportService(storage)
        self.wallet = WalletService(storage, wallet_settings)
        self.vouchers = VoucherService(storage, self.wallet)


ArgsT = Any
Handler = Callable[[ArgsT, str], Awaitable[ExecutionResult]]


def _tool(
    name: str,
    description: str,
    args_model: type[ToolArgs],
    handler: Handler,
    creates_money: bool = False,
) -> ToolDefinition:
    async def executor(args: dict[str, Any], user_id: str) -> ExecutionResult:
        params = args_model.model_validate(args)
        return await handler(params, user_id)

    return ToolDefinition(
        name=name,
        description=description,
        parameter_schema=gemini_schema(args_model),
        executor=executor,
        creates_money=creates_money,
    )


def build_default_catalog(services: LedgerServices) -> ToolCatalog:
    """Register the full tool set against `services`."""

    async def create_expense(params: CreateExpenseArgs, user_id: str) -> ExecutionResult:
        items = [ExpenseItem(**item.model_dump()) for item in params.items or []]
        expense = await services.expenses.create(
            user_id,
            amount=params.amount,
            description=params.description,
            category=params.category,
            items=items,
            calculation_expression=params.calculation_expression,
        )
        return ExecutionResult.ok({"expense": expense.model_dump(mode="json")})

    async def edit_expense(params: EditExpenseArgs, user_id: str) -> ExecutionResult:
        expense = await services.expenses.edit(
            user_id,
            expense_id=params.expense_id,
            amount=params.amount,
            description=params.description,
            category=params.category,
        )
        return ExecutionResult.ok({"expense": expense.model_dump(mode="json")})

    async def delete_expense(params: DeleteExpenseArgs, user_id: str) -> ExecutionResult:
        expense = await services.expenses.delete(user_id, params.expense_id)
        return ExecutionResult.ok({"expense": expense.model_dump(mode="json")})

    async def list_expenses(params: ListExpensesArgs, user_id: str) -> ExecutionResult:
        expenses = await services.expenses.list(
            user_id,
            start_date=params.start_date,
            end_date=params.end_date,
            category=params.category,
        )
        return ExecutionResult.ok({
            "expenses": [e.model_dump(mode="json", exclude={"user_id"}) for e in expenses],
            "count": len(expenses),
            "total": sum(e.amount for e in expenses),
        })

    async def create_income(params: CreateIncomeArgs, user_id: str) -> ExecutionResult:
        income = await services.incomes.create(
            user_id,
            amount=params.amount,
            description=params.description,
            source=params.source,
        )
        return ExecutionResult.ok({"income": income.model_dump(mode="json")})

    async def set_budget(params: SetBudgetArgs, user_id: str) -> ExecutionResult:
        budget = await services.budgets.set_budget(
            user_id, params.category_name, params.amount, params.period
        )
        return ExecutionResult.ok({"budget": budget.model_dump(mode="json")})

    async def check_budget_status(params: CheckBudgetArgs, user_id: str) -> ExecutionResult:
        statuses = await services.budgets.status(user_id, params.category_name)
        return ExecutionResult.ok({"budgets": statuses})

    async def add_balance(params: AddBalanceArgs, user_id: str) -> ExecutionResult:
        wallet, coins = await services.wallet.add_balance(user_id, params.amount)
        return ExecutionResult.ok({
            "amount": params.amount,
            "coins_added": coins,
            "balance": wallet.balance,
            "coins": wallet.coins,
        })

    async def redeem_voucher(params: RedeemVoucherArgs, user_id: str) -> ExecutionResult:
        return ExecutionResult.ok(await services.vouchers.redeem(user_id, params.code))

    async def manage_category(params: ManageCategoryArgs, user_id: str) -> ExecutionResult:
        action = params.action
        if action == CategoryAction.CREATE:
            name = await services.categories.create(user_id, params.name)
        elif action == CategoryAction.UPDATE:
            name = await services.categories.rename(user_id, params.name, params.new_name)
        elif action == CategoryAction.DELETE:
            name = await services.categories.delete(user_id, params.name)
        else:
            return ExecutionResult.ok({
                "action": action.value,
                "categories": await services.categories.list_names(user_id),
            })
        return ExecutionResult.ok({"action": action.value, "category": name})

    async def generate_report(params: GenerateReportArgs, user_id: str) -> ExecutionResult:
        return ExecutionResult.ok(await services.reports.generate(user_id, params.period))

    async def save_memory(params: SaveMemoryArgs, user_id: str) -> ExecutionResult:
        item = await services.memories.save(user_id, params.key, params.value)
        return ExecutionResult.ok({"memory": {"key": item.key, "value": item.value}})

    async def get_memory(params: GetMemoryArgs, user_id: str) -> ExecutionResult:
        items = await services.memories.get(user_id, params.key)
        return ExecutionResult.ok({
            "memories": [{"key": m.key, "value": m.value} for m in items],
        })

    async def delete_memory(params: DeleteMemoryArgs, user_id: str) -> ExecutionResult:
        return ExecutionResult.ok({"deleted": await services.memories.delete(user_id, params.key)})

    async def help_tool(params: HelpArgs, user_id: str) -> ExecutionResult:
        return ExecutionResult.ok({"topic": params.topic or ""})

    catalog = ToolCatalog()
    for definition in [
        _tool(
            "create_expense",
            "Record an expense the user made. Only call when the user states an amount.",
            CreateExpenseArgs, create_expense, creates_money=True,
        ),
        _tool(
            "edit_expense",
            "Change an existing expense; without expense_id the most recent one is edited.",
            EditExpenseArgs, edit_expense,
        ),
        _tool("delete_expense", "Delete an expense by transaction id.", DeleteExpenseArgs, delete_expense),
        _tool(
            "list_expenses",
            "List the user's expenses in a date range, with the total.",
            ListExpensesArgs, list_expenses,
        ),
        _tool(
            "create_income",
            "Record income the user received. Only call when the user states an amount.",
            CreateIncomeArgs, create_income, creates_money=True,
        ),
        _tool("set_budget", "Set a spending limit for a category.", SetBudgetArgs, set_budget),
        _tool(
            "check_budget_status",
            "Show how much of each budget has been used in the current period.",
            CheckBudgetArgs, check_budget_status,
        ),
        _tool(
            "add_balance",
            "Top up the user's wallet balance; also grants coins.",
            AddBalanceArgs, add_balance, creates_money=True,
        ),
        _tool("redeem_voucher", "Redeem a voucher code.", RedeemVoucherArgs, redeem_voucher),
        _tool(
            "manage_category",
            "Create, rename, delete or list the user's expense categories.",
            ManageCategoryArgs, manage_category,
        ),
        _tool(
            "generate_report",
            "Summarize income and expenses for this week, month or year.",
            GenerateReportArgs, generate_report,
        ),
        _tool(
            "save_memory",
            "Remember a fact about the user, e.g. their usual coffee order and its price.",
            SaveMemoryArgs, save_memory,
        ),
        _tool(
            "get_memory",
            "Recall remembered facts about the user. Check before recording vague transactions.",
            GetMemoryArgs, get_memory,
        ),
        _tool("delete_memory", "Forget a remembered fact.", DeleteMemoryArgs, delete_memory),
        _tool("help_tool", "Show usage help, optionally for one topic.", HelpArgs, help_tool),
    ]:
        catalog.register(definition)
    return catalog
