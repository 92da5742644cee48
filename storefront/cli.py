#!/usr/bin/env python3
import argparse
import asyncio
import os
import platform
import sys
from decimal import Decimal, InvalidOperation

from storefront.app import Storefront
from storefront.constants import FILTER_TYPES
from storefront.schemas import Notification, ProductCreate, UserLogin, UserRegister
from storefront.shared.logging_config import setup_logging
from storefront.shared.utils import StoreException, settings
from storefront.storage import JsonFileStore

# --- Colors ---
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'

if platform.system() == "Windows":
    os.system('color')  # Enable ANSI colors in Windows terminal

NOTIFICATION_COLORS = {"success": Colors.GREEN, "error": Colors.FAIL, "info": Colors.CYAN}

def log(msg, color=Colors.ENDC, bold=False):
    prefix = ""
    if bold:
        prefix = Colors.BOLD
    print(f"{prefix}{color}{msg}{Colors.ENDC}")

def show_notification(notification: Notification):
    log(f"» {notification.message}", NOTIFICATION_COLORS.get(notification.type, Colors.ENDC))

# --- Commands ---

def cmd_products(store: Storefront, args):
    products = store.catalog.filter(args.search or "", args.type)
    if not products:
        log("No results", Colors.WARNING)
    for p in products:
        log(f"{p.id:>6}  {p.title:<40} {p.price:>10} SAR  [{p.type}]")

def cmd_news(store: Storefront, args):
    for item in store.catalog.news:
        log(f"[{item.type}] {item.title}", Colors.BLUE, bold=True)
        log(f"    {item.content}")

def print_cart(store: Storefront):
    items = store.cart.items
    if not items:
        log("Cart is empty", Colors.WARNING)
        return
    for item in items:
        log(f"{item.id:>6}  {item.title:<40} x{item.quantity:<3} {item.price * item.quantity:>10} SAR")
    log(f"Items: {store.cart.total_item_count()}", Colors.BOLD)

def cmd_cart(store: Storefront, args):
    if args.action == "show":
        print_cart(store)
        return
    if not args.product_id:
        log(f"cart {args.action} needs a product id", Colors.FAIL)
        return
    if args.action == "add":
        product = store.catalog.get(args.product_id)
        if product is None:
            log(f"Unknown product {args.product_id}", Colors.FAIL)
            return
        store.cart.add_item(product)
    elif args.action == "inc":
        store.cart.update_quantity(args.product_id, 1)
    elif args.action == "dec":
        store.cart.update_quantity(args.product_id, -1)
    elif args.action == "remove":
        store.cart.remove_item(args.product_id)
    print_cart(store)

def cmd_totals(store: Storefront, args):
    totals = store.checkout.preview().rounded()
    log(f"Subtotal: {totals.subtotal} SAR")
    log(f"VAT:      {totals.tax} SAR")
    log(f"Total:    {totals.final} SAR", Colors.GREEN, bold=True)

async def cmd_checkout(store: Storefront, args):
    result = await store.checkout.checkout(promo_code=args.promo)
    if result.success:
        order = result.data
        log(f"Order {order.id}: {order.final_amount} SAR ({order.status})", Colors.GREEN, bold=True)
    return 0 if result.success else 1

async def cmd_login(store: Storefront, args):
    user = await store.session.sign_in(UserLogin(email=args.email, password=args.password))
    return 0 if user else 1

async def cmd_signup(store: Storefront, args):
    registration = UserRegister(email=args.email, password=args.password, name=args.name)
    session = await store.backend.sign_up(registration)
    if session is None:
        log("Account created, confirm your email before signing in", Colors.CYAN)
        return 0
    user = await store.session.recover()
    return 0 if user else 1

async def cmd_logout(store: Storefront, args):
    await store.session.sign_out()

def cmd_whoami(store: Storefront, args):
    user = store.session.current_user()
    if user is None:
        log("Not signed in", Colors.WARNING)
        return 1
    log(f"{user.name} <{user.email}> role={user.role} wallet={user.wallet_balance}")

async def cmd_orders(store: Storefront, args):
    user = store.session.current_user()
    if user is None:
        log("Not signed in", Colors.WARNING)
        return 1
    for order in await store.backend.get_user_orders(user.id):
        log(f"{order.id}  {order.final_amount:>10} SAR  {order.status:<10} {order.created_at or ''}")

async def cmd_publish(store: Storefront, args):
    try:
        price = Decimal(args.price)
    except InvalidOperation:
        log(f"Invalid price: {args.price}", Colors.FAIL)
        return 1
    try:
        listing = ProductCreate(
            title=args.title,
            description=args.description,
            price=price,
            type=args.type,
            image_url=args.image,
        )
    except ValueError as e:
        log(f"Invalid product: {e}", Colors.FAIL)
        return 1
    result = await store.merchant.publish(listing)
    return 0 if result.success else 1

def cmd_theme(store: Storefront, args):
    log(f"Theme: {store.theme.toggle()}")

COMMANDS = {
    "products": cmd_products,
    "news": cmd_news,
    "cart": cmd_cart,
    "totals": cmd_totals,
    "checkout": cmd_checkout,
    "login": cmd_login,
    "signup": cmd_signup,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "orders": cmd_orders,
    "publish": cmd_publish,
    "theme": cmd_theme,
}

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storefront", description="Trillion digital store client")
    parser.add_argument("--state-dir", help="Directory holding the local cart, session and theme")
    parser.add_argument("--log-level", default="WARNING", help="Log level for JSON logs on stdout")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("products", help="Browse the catalog")
    p.add_argument("--search", help="Match against title and description")
    p.add_argument("--type", default="all", choices=FILTER_TYPES)

    sub.add_parser("news", help="Show store news")

    p = sub.add_parser("cart", help="Show or change the cart")
    p.add_argument("action", choices=["show", "add", "inc", "dec", "remove"])
    p.add_argument("product_id", nargs="?")

    sub.add_parser("totals", help="Show subtotal, VAT and total")

    p = sub.add_parser("checkout", help="Place an order for the cart")
    p.add_argument("--promo", help="Promo code")

    p = sub.add_parser("login", help="Sign in with email and password")
    p.add_argument("email")
    p.add_argument("password")

    p = sub.add_parser("signup", help="Create an account")
    p.add_argument("email")
    p.add_argument("password")
    p.add_argument("name")

    sub.add_parser("logout", help="Sign out")
    sub.add_parser("whoami", help="Show the signed-in user")
    sub.add_parser("orders", help="List your orders")

    p = sub.add_parser("publish", help="List a new product (merchants)")
    p.add_argument("title")
    p.add_argument("price")
    p.add_argument("--description", default="")
    p.add_argument("--type", default="digital_product", choices=FILTER_TYPES[1:])
    p.add_argument("--image")

    sub.add_parser("theme", help="Toggle light/dark theme")
    return parser

async def run(args) -> int:
    storage = JsonFileStore(args.state_dir or settings.STATE_DIR)
    async with Storefront(settings, storage=storage) as store:
        store.notifier.subscribe(show_notification)
        handler = COMMANDS[args.command]
        try:
            result = handler(store, args)
            if asyncio.iscoroutine(result):
                result = await result
        except StoreException as e:
            log(e.detail, Colors.FAIL)
            return 1
        except ValueError as e:
            log(f"Invalid input: {e}", Colors.FAIL)
            return 2
    return result or 0

def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging("storefront", args.log_level.upper())
    return asyncio.run(run(args))

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        log("\nAborted by user.", Colors.WARNING)
        sys.exit(0)
