"""
Main CLI application.

Entry point for asset-entitlements command.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path  # noqa: TC003
from typing import Annotated

import typer
from pydantic import BaseModel, Field, ValidationError

import asset_entitlements
from asset_entitlements.cli.context import CliContext, ExitCode, get_exit_code
from asset_entitlements.cli.output import OutputAdapter, OutputFormat, get_output_adapter
from asset_entitlements.config import Settings, load_settings
from asset_entitlements.core.errors import AccessPassError, ConfigError, LicenseIssueError
from asset_entitlements.core.licensing import (
    AccessPass,
    LicenseManager,
    LicenseStatus,
    LicenseType,
    OrderItem,
    PassType,
    Pricing,
)
from asset_entitlements.core.store import JsonFileStore, StoreError

# Create main app
app = typer.Typer(
    name="asset-entitlements",
    help="Licensing and download entitlements for digital assets",
    add_completion=False,
    no_args_is_help=True,
)

FormatOption = Annotated[
    str,
    typer.Option("--format", "-f", help="Output format: terminal, json"),
]
ColorOption = Annotated[
    bool,
    typer.Option("--color/--no-color", help="Enable/disable colored output"),
]


class OrderFile(BaseModel):
    """Completed order as read by issue-order."""

    user_id: str
    order_id: str
    currency: str = Field(default="USD")
    stripe_payment_intent_id: str | None = Field(default=None)
    items: list[OrderItem] = Field(min_length=1)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"asset-entitlements {asset_entitlements.__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr"),
    ] = False,
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Store file (overrides config)"),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file (default: ./asset-entitlements.yaml)"),
    ] = None,
) -> None:
    """Licensing and download entitlements for digital assets."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    ctx.obj = CliContext(store_path=store, config_file=config, verbose=verbose)


# =============================================================================
# Helpers
# =============================================================================


def _get_context(ctx: typer.Context) -> CliContext:
    return ctx.obj if isinstance(ctx.obj, CliContext) else CliContext()


def _load_settings(ctx: typer.Context) -> Settings:
    cli_ctx = _get_context(ctx)
    try:
        return load_settings(cli_ctx.config_file)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(ExitCode.CONFIG) from None


def _open_manager(ctx: typer.Context) -> LicenseManager:
    """Load settings and open the store."""
    cli_ctx = _get_context(ctx)
    settings = _load_settings(ctx)

    try:
        store = JsonFileStore(cli_ctx.store_path or settings.store_path)
    except StoreError as e:
        typer.echo(f"Error opening store: {e}", err=True)
        raise typer.Exit(ExitCode.FATAL) from None

    return LicenseManager(store, settings)


def _get_adapter(format: str, color: bool) -> OutputAdapter:
    try:
        output_format = OutputFormat(format)
    except ValueError:
        typer.echo(f"Unknown format: {format}", err=True)
        typer.echo("Available formats: terminal, json", err=True)
        raise typer.Exit(ExitCode.USAGE) from None

    return get_output_adapter(output_format, color=color)


# =============================================================================
# Issuance Commands
# =============================================================================


@app.command()
def issue(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
    product: Annotated[str, typer.Argument(help="Product id")],
    order: Annotated[str, typer.Argument(help="Order id")],
    license_type: Annotated[
        str,
        typer.Option("--type", "-t", help="License type: basic, extended, access_pass"),
    ] = "basic",
    price: Annotated[float, typer.Option("--price", help="Purchase price")] = 0.0,
    currency: Annotated[str, typer.Option("--currency", help="ISO currency code")] = "USD",
    payment_intent: Annotated[
        str | None,
        typer.Option("--payment-intent", help="Payment reference"),
    ] = None,
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Issue a license for one product."""
    adapter = _get_adapter(format, color)

    try:
        tier = LicenseType(license_type)
    except ValueError:
        typer.echo(f"Invalid license type: {license_type}", err=True)
        raise typer.Exit(ExitCode.USAGE) from None

    manager = _open_manager(ctx)
    try:
        result = manager.generate_license(
            user_id=user,
            order_id=order,
            license_type=tier,
            product_id=product,
            purchase_price=price,
            currency=currency,
            stripe_payment_intent_id=payment_intent,
        )
    except (LicenseIssueError, AccessPassError) as e:
        typer.echo(f"Error issuing license: {e}", err=True)
        raise typer.Exit(ExitCode.FATAL) from None

    if isinstance(result, AccessPass):
        typer.echo(adapter.render_access_pass(result))
    else:
        typer.echo(adapter.render_licenses(result if isinstance(result, list) else [result]))


@app.command("issue-order")
def issue_order(
    ctx: typer.Context,
    order_file: Annotated[Path, typer.Argument(help="Order JSON file", exists=True, dir_okay=False)],
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """
    Issue licenses for every item of a completed order.

    The order file holds user_id, order_id, currency and items
    (product_id, quantity, price, license_type).
    """
    adapter = _get_adapter(format, color)

    try:
        order = OrderFile.model_validate_json(order_file.read_text(encoding="utf-8"))
    except ValidationError as e:
        typer.echo(f"Invalid order file: {e}", err=True)
        raise typer.Exit(ExitCode.USAGE) from None

    manager = _open_manager(ctx)
    try:
        licenses = manager.generate_order_licenses(
            user_id=order.user_id,
            order_id=order.order_id,
            items=order.items,
            currency=order.currency,
            stripe_payment_intent_id=order.stripe_payment_intent_id,
        )
    except LicenseIssueError as e:
        typer.echo(f"Error issuing licenses: {e}", err=True)
        raise typer.Exit(ExitCode.FATAL) from None

    typer.echo(adapter.render_licenses(licenses))


# =============================================================================
# Download Commands
# =============================================================================


@app.command()
def check(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
    product: Annotated[str | None, typer.Option("--product", "-p", help="Product id")] = None,
    license_id: Annotated[str | None, typer.Option("--license", "-l", help="License id")] = None,
    quick: Annotated[
        bool,
        typer.Option("--quick", help="Existence check only (no license details)"),
    ] = False,
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Check whether a user may download a product."""
    adapter = _get_adapter(format, color)
    manager = _open_manager(ctx)

    if quick:
        access = manager.check_access(user, product)
        typer.echo(adapter.render_access_check(access))
        raise typer.Exit(get_exit_code(access.has_access))

    validation = manager.validate_download_access(user, product_id=product, license_id=license_id)
    typer.echo(adapter.render_validation(validation))
    raise typer.Exit(get_exit_code(validation.can_download))


@app.command()
def download(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
    product: Annotated[str | None, typer.Option("--product", "-p", help="Product id")] = None,
    license_id: Annotated[str | None, typer.Option("--license", "-l", help="License id")] = None,
    size: Annotated[int | None, typer.Option("--size", help="File size in bytes")] = None,
    ip: Annotated[str | None, typer.Option("--ip", help="Client IP address")] = None,
    agent: Annotated[str | None, typer.Option("--agent", help="Client user agent")] = None,
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Authorize and record a download."""
    adapter = _get_adapter(format, color)
    manager = _open_manager(ctx)

    validation, record = manager.download(
        user,
        product,
        license_id,
        file_size=size,
        ip_address=ip,
        user_agent=agent,
    )
    typer.echo(adapter.render_download(validation, record))

    allowed = validation.can_download and record is not None and record.success
    raise typer.Exit(get_exit_code(allowed))


@app.command("licenses")
def list_licenses(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
    status: Annotated[
        str,
        typer.Option("--status", "-s", help="Filter by status (all, active, suspended, expired, revoked)"),
    ] = "all",
    license_type: Annotated[
        str,
        typer.Option("--type", "-t", help="Filter by type (all, basic, extended)"),
    ] = "all",
    order: Annotated[str | None, typer.Option("--order", help="Filter by order id")] = None,
    product: Annotated[str | None, typer.Option("--product", "-p", help="Filter by product id")] = None,
    limit: Annotated[int, typer.Option("--limit", help="Page size")] = 50,
    offset: Annotated[int, typer.Option("--offset", help="Licenses to skip")] = 0,
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """List a user's licenses, newest first."""
    adapter = _get_adapter(format, color)

    try:
        status_filter = status if status == "all" else LicenseStatus(status)
        type_filter = license_type if license_type == "all" else LicenseType(license_type)
    except ValueError as e:
        typer.echo(f"Invalid filter: {e}", err=True)
        raise typer.Exit(ExitCode.USAGE) from None

    manager = _open_manager(ctx)
    listing = manager.get_user_licenses(
        user,
        order_id=order,
        product_id=product,
        status=status_filter,
        license_type=type_filter,
        limit=limit,
        offset=offset,
    )
    typer.echo(adapter.render_listing(listing))


@app.command()
def stats(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Show a user's download statistics."""
    adapter = _get_adapter(format, color)
    manager = _open_manager(ctx)
    typer.echo(adapter.render_stats(manager.get_user_download_stats(user)))


# =============================================================================
# Access Pass Commands
# =============================================================================


@app.command("pass-create")
def pass_create(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
    pass_type: Annotated[
        str,
        typer.Option("--type", "-t", help="Pass type: monthly, yearly, lifetime"),
    ],
    period_end: Annotated[
        datetime | None,
        typer.Option("--period-end", help="End of the current period (not for lifetime)"),
    ] = None,
    customer: Annotated[str | None, typer.Option("--customer", help="Payment customer id")] = None,
    subscription: Annotated[
        str | None,
        typer.Option("--subscription", help="Payment subscription id"),
    ] = None,
    amount: Annotated[float, typer.Option("--amount", help="Price")] = 0.0,
    currency: Annotated[str, typer.Option("--currency", help="ISO currency code")] = "USD",
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Create an access pass."""
    adapter = _get_adapter(format, color)

    try:
        kind = PassType(pass_type)
    except ValueError:
        typer.echo(f"Invalid pass type: {pass_type}", err=True)
        raise typer.Exit(ExitCode.USAGE) from None

    if period_end is not None and period_end.tzinfo is None:
        period_end = period_end.replace(tzinfo=UTC)

    interval = {PassType.MONTHLY: "month", PassType.YEARLY: "year", PassType.LIFETIME: "one_time"}[kind]

    manager = _open_manager(ctx)
    try:
        access_pass = manager.access_passes.create(
            user_id=user,
            pass_type=kind,
            stripe_customer_id=customer,
            stripe_subscription_id=subscription,
            pricing=Pricing(amount=amount, currency=currency, interval=interval),
            current_period_end=period_end,
        )
    except AccessPassError as e:
        typer.echo(f"Error creating access pass: {e}", err=True)
        raise typer.Exit(ExitCode.USAGE) from None

    typer.echo(adapter.render_access_pass(access_pass))


@app.command("pass-show")
def pass_show(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Show a user's access pass."""
    adapter = _get_adapter(format, color)
    manager = _open_manager(ctx)

    access_pass = manager.manage_access_pass("get", user_id=user)
    typer.echo(adapter.render_access_pass(access_pass if isinstance(access_pass, AccessPass) else None))
    raise typer.Exit(get_exit_code(isinstance(access_pass, AccessPass)))


@app.command("pass-cancel")
def pass_cancel(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
) -> None:
    """Cancel a user's access pass."""
    manager = _open_manager(ctx)

    if not manager.manage_access_pass("cancel", user_id=user):
        typer.echo(f"No access pass for user {user}", err=True)
        raise typer.Exit(ExitCode.DENIED)

    typer.echo(f"✓ Access pass cancelled for {user}")


# =============================================================================
# Token Commands
# =============================================================================


@app.command("token-create")
def token_create(
    ctx: typer.Context,
    user: Annotated[str, typer.Argument(help="User id")],
    product: Annotated[str, typer.Argument(help="Product id")],
    license_id: Annotated[str, typer.Argument(help="License id")],
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Create a signed download link."""
    from asset_entitlements.core.tokens import generate_secure_download_url

    adapter = _get_adapter(format, color)
    settings = _load_settings(ctx)

    try:
        secure_url = generate_secure_download_url(
            user,
            product,
            license_id,
            secret=settings.token_secret,
            base_url=settings.base_url,
            ttl=timedelta(hours=settings.token_ttl_hours),
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(ExitCode.USAGE) from None

    typer.echo(adapter.render_secure_url(secure_url))


@app.command("token-verify")
def token_verify(
    ctx: typer.Context,
    token: Annotated[str, typer.Argument(help="Download token")],
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Verify a download token's signature and age (no live license check)."""
    from asset_entitlements.core.tokens import verify_download_token

    adapter = _get_adapter(format, color)
    settings = _load_settings(ctx)

    verification = verify_download_token(
        token,
        secret=settings.token_secret,
        ttl=timedelta(hours=settings.token_ttl_hours),
    )
    typer.echo(adapter.render_token(verification))
    raise typer.Exit(get_exit_code(verification.valid))


@app.command("token-redeem")
def token_redeem(
    ctx: typer.Context,
    token: Annotated[str, typer.Argument(help="Download token")],
    format: FormatOption = "terminal",
    color: ColorOption = True,
) -> None:
    """Verify a download token and re-check the license it names."""
    from asset_entitlements.core.tokens import redeem_download_token

    adapter = _get_adapter(format, color)
    manager = _open_manager(ctx)

    validation = redeem_download_token(
        manager.store,
        token,
        secret=manager.settings.token_secret,
        ttl=timedelta(hours=manager.settings.token_ttl_hours),
    )
    typer.echo(adapter.render_validation(validation))
    raise typer.Exit(get_exit_code(validation.can_download))


# =============================================================================
# CLI Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
