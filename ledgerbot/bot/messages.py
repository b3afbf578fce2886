"""Chat copy and the opaque ids carried by interactive buttons and list options."""

EDIT_BUTTON_PREFIX = "edit_expense"
CATEGORY_OPTION_PREFIX = "set_category"


def format_brl(amount: float) -> str:
    """Format amount in BRL style: 1234.5 -> 'R$ 1.234,50'."""
    text = f"{amount:,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def edit_button_id(pending_id: int) -> str:
    return f"{EDIT_BUTTON_PREFIX}:{pending_id}"


def parse_edit_button_id(button_id: str) -> int | None:
    prefix, _, raw_id = button_id.partition(":")
    if prefix != EDIT_BUTTON_PREFIX or not raw_id.isdigit():
        return None
    return int(raw_id)


def category_option_id(pending_id: int, category_id: int) -> str:
    return f"{CATEGORY_OPTION_PREFIX}:{pending_id}:{category_id}"


def parse_category_option_id(option_id: str) -> tuple[int, int] | None:
    """Returns (pending_id, category_id), or None for anything that is not a category option."""
    parts = option_id.split(":")
    if len(parts) != 3 or parts[0] != CATEGORY_OPTION_PREFIX:
        return None
    if not (parts[1].isdigit() and parts[2].isdigit()):
        return None
    return int(parts[1]), int(parts[2])


def confirmation_prompt(
    value: float, category_name: str, description: str | None, total: float, window_minutes: int
) -> str:
    lines = [
        f"💸 *Custo registrado:* {format_brl(value)}",
        f"*Cat. sugerida:* {category_name}",
    ]
    if description:
        lines.append(f"*Desc.:* {description}")
    lines.append(f"*Total de despesas:* {format_brl(total)}")
    lines.append("")
    lines.append(
        "Para alterar a categoria, toque em *Corrigir categoria*. "
        f"Caso contrário, esta categoria será mantida em {window_minutes} min."
    )
    return "\n".join(lines)


NO_LONGER_PENDING = "⏳ *Tempo esgotado*\n\nEsta despesa não está mais pendente de edição."
SELECTION_FAILED = "❌ Não foi possível atualizar a categoria desta despesa. Ela pode já ter sido confirmada."


def not_the_sender(clicker_phone: str, sender_phone: str) -> str:
    return (
        f"🤚 *Atenção, {clicker_phone}!*\n\n"
        f"Apenas quem registrou a despesa ({sender_phone}) pode editá-la."
    )


def category_list_prompt(value: float, description: str | None) -> str:
    subject = f"*{format_brl(value)}*"
    if description:
        subject += f" ({description})"
    return f"📋 *Editar categoria*\n\nVocê está editando a despesa de {subject}.\nEscolha a nova categoria: 👇"


def category_updated(expense_id: int, category_name: str, total: float) -> str:
    return (
        "✅ *Custo atualizado!*\n"
        f"Despesa #{expense_id}\n"
        f"Nova categoria: *{category_name}*\n"
        f"*Total de despesas:* {format_brl(total)}"
    )
