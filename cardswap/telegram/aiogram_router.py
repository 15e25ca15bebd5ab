"""Factory helpers to wire CardSwap services into aiogram."""

from __future__ import annotations

from typing import Iterable, Sequence

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from ..app import SwapApp
from ..domain.cards import CardCatalog
from ..domain.exceptions import ErrorKind
from ..domain.market import MarketFilter, MarketPage, OfferSummary
from ..gateway import SwapGateway, SwapResult
from ..storage.base import CardInstanceRecord, TradeRecord
from .keyboards import market_keyboard, my_offers_keyboard, welcome_keyboard

_ERROR_TEXT = {
    ErrorKind.UNAUTHENTICATED: "Не удалось определить игрока.",
    ErrorKind.NOT_OWNER: "Эта карта или предложение вам не принадлежит.",
    ErrorKind.NOT_ELIGIBLE: "Обмен невозможен",
    ErrorKind.INVALID_CARD: "Неизвестная карта",
    ErrorKind.SAME_KIND_FORBIDDEN: "Нельзя менять карту на такую же.",
    ErrorKind.INVALID_REQUEST: "Некорректный запрос.",
    ErrorKind.NOT_FOUND: "Предложение не найдено.",
    ErrorKind.ALREADY_LOCKED: "Эта карта уже выставлена на обмен.",
    ErrorKind.NO_LONGER_ACTIVE: "Предложение уже закрыто. Обнови рынок.",
    ErrorKind.STORAGE_UNAVAILABLE: "Хранилище временно недоступно, попробуй позже.",
    ErrorKind.TIMEOUT: "Операция не успела завершиться, попробуй ещё раз.",
    ErrorKind.TRADE_INCOMPLETE: "Обмен не завершён. Администратор проверит состояние карт.",
    ErrorKind.NEEDS_RECONCILIATION: "Требуется проверка администратором.",
}


def build_router(app: SwapApp, *, gateway: SwapGateway | None = None) -> Router:
    ensure_catalog_ready(app)

    router = Router()
    swaps = gateway or SwapGateway(app)
    catalog = app.cards.catalog

    async def show_market(message: Message, player_id: int, card_id: str | None = None) -> None:
        result = await swaps.list_market(player_id, MarketFilter(offered_card_id=card_id))
        if not result.ok:
            await message.answer(format_error(result))
            return
        await message.answer(
            format_market_message(result.value),
            reply_markup=market_keyboard(result.value.items),
        )

    async def show_mine(message: Message, player_id: int) -> None:
        result = await swaps.list_my_offers(player_id)
        if not result.ok:
            await message.answer(format_error(result))
            return
        await message.answer(
            format_my_offers_message(result.value),
            reply_markup=my_offers_keyboard(result.value),
        )

    async def accept(player_id: int, offer_id: str, instance_id: str | None) -> str:
        if instance_id is None:
            options = await swaps.payment_options(player_id, offer_id)
            if not options.ok:
                return format_error(options)
            if not options.value:
                return "У тебя нет свободной карты, которую просит это предложение."
            instance_id = options.value[0].instance_id
        result = await swaps.accept_offer(player_id, offer_id, instance_id)
        if not result.ok:
            return format_error(result)
        return f"✅ Обмен завершён! Ты получил экземпляр {result.value.received_instance_id}."

    @router.message(Command("start"))
    async def handle_start(message: Message) -> None:
        await message.answer(render_help_message(), reply_markup=welcome_keyboard())

    @router.message(Command("help"))
    async def handle_help(message: Message) -> None:
        await message.answer(render_help_message(), reply_markup=welcome_keyboard())

    @router.message(Command("market"))
    async def handle_market(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        args = command_args(message.text)
        await show_market(message, user.id, args[0] if args else None)

    @router.message(Command("myoffers"))
    async def handle_my_offers(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        await show_mine(message, user.id)

    @router.message(Command("cards"))
    async def handle_cards(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        result = await swaps.my_instances(user.id)
        if not result.ok:
            await message.answer(format_error(result))
            return
        await message.answer(format_instances_message(result.value, catalog))

    @router.message(Command("offer"))
    async def handle_offer(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        args = command_args(message.text)
        if len(args) < 2:
            await message.answer("Использование: /offer <экземпляр> <карта>")
            return
        result = await swaps.publish_offer(user.id, args[0], args[1])
        if not result.ok:
            await message.answer(format_error(result))
            return
        await message.answer(f"📤 Предложение {result.value} опубликовано.")

    @router.message(Command("cancel"))
    async def handle_cancel(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        args = command_args(message.text)
        if not args:
            await message.answer("Использование: /cancel <предложение>")
            return
        result = await swaps.cancel_offer(user.id, args[0])
        await message.answer("Предложение снято." if result.ok else format_error(result))

    @router.message(Command("accept"))
    async def handle_accept(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        args = command_args(message.text)
        if not args:
            await message.answer("Использование: /accept <предложение> [экземпляр]")
            return
        await message.answer(await accept(user.id, args[0], args[1] if len(args) > 1 else None))

    @router.message(Command("history"))
    async def handle_history(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        result = await swaps.trade_history(user.id)
        if not result.ok:
            await message.answer(format_error(result))
            return
        await message.answer(format_history_message(result.value, str(user.id)))

    @router.callback_query(lambda c: c.data and c.data.startswith("cardswap:accept:"))
    async def handle_accept_callback(callback: CallbackQuery) -> None:
        user = callback.from_user
        if not user or not callback.data:
            return
        offer_id = callback.data.split(":")[-1]
        text = await accept(user.id, offer_id, None)
        await callback.answer()
        await callback.message.answer(text)

    @router.callback_query(lambda c: c.data and c.data.startswith("cardswap:cancel:"))
    async def handle_cancel_callback(callback: CallbackQuery) -> None:
        user = callback.from_user
        if not user or not callback.data:
            return
        offer_id = callback.data.split(":")[-1]
        result = await swaps.cancel_offer(user.id, offer_id)
        if not result.ok:
            await callback.answer(format_error(result), show_alert=True)
            return
        await callback.answer("Предложение снято.")
        await show_mine(callback.message, user.id)

    @router.callback_query(lambda c: c.data == "cardswap:market")
    async def handle_market_callback(callback: CallbackQuery) -> None:
        await callback.answer()
        await show_market(callback.message, callback.from_user.id)

    @router.callback_query(lambda c: c.data == "cardswap:mine")
    async def handle_mine_callback(callback: CallbackQuery) -> None:
        await callback.answer()
        await show_mine(callback.message, callback.from_user.id)

    @router.callback_query(lambda c: c.data == "cardswap:help")
    async def handle_help_callback(callback: CallbackQuery) -> None:
        await callback.answer()
        await callback.message.answer(render_help_message(), reply_markup=welcome_keyboard())

    return router


def ensure_catalog_ready(app: SwapApp) -> None:
    cards = list(app.cards.catalog.iter_cards())
    if len(cards) < 2:
        raise RuntimeError(
            "Для обмена нужно минимум две карты. Используйте app.cards.card(...) или load_catalog_from_json."
        )


def command_args(text: str | None) -> list[str]:
    if not text:
        return []
    return text.strip().split()[1:]


def render_help_message() -> str:
    lines = [
        "Привет! Здесь можно меняться картами с другими игроками.",
        "",
        "Команды:",
        "• /market [карта] — открытые предложения",
        "• /myoffers — твои предложения",
        "• /cards — твои экземпляры карт",
        "• /offer <экземпляр> <карта> — предложить обмен",
        "• /accept <предложение> [экземпляр] — принять обмен",
        "• /cancel <предложение> — снять предложение",
        "• /history — история обменов",
        "• /help — показать это сообщение",
    ]
    return "\n".join(lines)


def format_error(result: SwapResult) -> str:
    text = _ERROR_TEXT.get(result.error, "Что-то пошло не так.")
    if result.error in (ErrorKind.NOT_ELIGIBLE, ErrorKind.INVALID_CARD) and result.message:
        return f"{text}: {result.message}"
    return text


def format_offer_line(offer: OfferSummary) -> str:
    return f"• {offer.offered.name} ⇄ {offer.requested.name} (#{offer.offer_id[:8]})"


def format_market_message(page: MarketPage) -> str:
    if not page.items:
        return "На рынке пока нет предложений."
    lines = ["🏪 Рынок обмена:"]
    for offer in page.items:
        lines.append(format_offer_line(offer))
        lines.append(f"  отдаёт {offer.offered.name}, хочет {offer.requested.name}")
    if page.next_cursor:
        lines.append("")
        lines.append("Показаны самые свежие предложения. Уточни поиск: /market <карта>.")
    return "\n".join(lines)


def format_my_offers_message(offers: Sequence[OfferSummary]) -> str:
    if not offers:
        return "У тебя нет активных предложений. Создай их командой /offer."
    lines = ["📦 Твои предложения:"]
    lines.extend(format_offer_line(offer) for offer in offers)
    return "\n".join(lines)


def format_instances_message(instances: Iterable[CardInstanceRecord], catalog: CardCatalog) -> str:
    instances = list(instances)
    if not instances:
        return "Коллекция пуста."
    lines = ["📚 Твои карты:"]
    for instance in sorted(instances, key=lambda rec: (rec.card_id, rec.instance_id)):
        lock = " 🔒" if instance.is_locked else ""
        lines.append(
            f"• {_card_name(catalog, instance.card_id)} ур.{instance.level} "
            f"[{instance.instance_id}]{lock}"
        )
    return "\n".join(lines)


def format_history_message(records: Iterable[TradeRecord], player_id: str) -> str:
    records = list(records)
    if not records:
        return "Обменов пока не было."
    lines = ["🧾 История обменов:"]
    for record in records:
        when = record.created_at.strftime("%Y-%m-%d %H:%M")
        if record.maker_id == player_id:
            gave, got, partner = record.maker_instance_id, record.taker_instance_id, record.taker_id
        else:
            gave, got, partner = record.taker_instance_id, record.maker_instance_id, record.maker_id
        lines.append(f"• {when}: отдал {gave}, получил {got} (с {partner})")
    return "\n".join(lines)


def _card_name(catalog: CardCatalog, card_id: str) -> str:
    if catalog.has_card(card_id):
        return catalog.get_card(card_id).name
    return card_id
