"""
CLI 命令模块 - tvon 的所有命令行命令定义。

本模块使用 Typer 框架定义 tvon 的 CLI 命令：
- onboard：生成默认配置和行为设置文件
- run：连接 WhatsApp，在终端显示二维码、状态变化和收到的消息
- status：查看配置、凭据和行为设置
- send：连接后发送一条文本消息
- check：查询号码是否注册了 WhatsApp
- logout：删除本地凭据（下次连接需要重新扫码）

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色）
- loguru：日志输出，级别来自 --verbose 或行为设置中的 logLevel
"""

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from tvon import __logo__, __version__

app = typer.Typer(
    name="tvon",
    help=f"{__logo__} tvon - WhatsApp session manager for TV ON",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} tvon v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """tvon CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


def _setup_logging(level: str, verbose: bool = False) -> None:
    """
    配置 loguru 输出。

    参数:
        level: 行为设置中的 logLevel（"silent" 表示关闭 tvon 日志）
        verbose: 为 True 时强制 DEBUG
    """
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG")
        logger.enable("tvon")
        return
    if level.lower() == "silent":
        logger.disable("tvon")
        return
    logger.add(sys.stderr, level=level.upper())
    logger.enable("tvon")


def _settings_level() -> str:
    from tvon.config.loader import load_config
    from tvon.whatsapp.settings_store import JsonSettingsStore

    try:
        settings = JsonSettingsStore(load_config().settings_file).load()
    except ValueError:
        return "info"
    return settings.log_level if settings else "info"


async def _connect(manager, timeout: float) -> bool:
    """启动会话并等待连接打开；期间收到二维码时打印到终端。"""
    from tvon.whatsapp.qr import render_qr_terminal

    opened = asyncio.Event()
    shown_qr: set[str] = set()

    def on_status(status) -> None:
        if status.qr and status.qr not in shown_qr:
            shown_qr.add(status.qr)
            console.print("Scan the QR code with WhatsApp (Linked devices):\n")
            console.print(render_qr_terminal(status.qr))
        if status.connected:
            opened.set()

    unsubscribe = manager.on_status_change(on_status)
    try:
        await manager.initialize()
        await asyncio.wait_for(opened.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False
    finally:
        unsubscribe()


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """
    初始化 tvon 配置。

    在 ~/.tvon/ 下创建默认配置文件 config.json 和行为设置文件；
    已存在的文件不会被覆盖。
    """
    from tvon.config.loader import get_config_path, load_config, save_config
    from tvon.config.schema import WhatsAppSettings
    from tvon.whatsapp.settings_store import JsonSettingsStore

    config_path = get_config_path()
    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
    else:
        save_config(load_config())
        console.print(f"[green]✓[/green] Created config at {config_path}")

    config = load_config()
    if config.settings_file.exists():
        console.print(f"[yellow]Settings already exist at {config.settings_file}[/yellow]")
    else:
        JsonSettingsStore(config.settings_file).save(WhatsAppSettings())
        console.print(f"[green]✓[/green] Created WhatsApp settings at {config.settings_file}")

    console.print(f"\n{__logo__} tvon is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Start the WhatsApp bridge at [cyan]{config.bridge.url}[/cyan]")
    console.print("  2. Pair your phone: [cyan]tvon run[/cyan]")


# ============================================================================
# Session Commands
# ============================================================================


@app.command()
def run(
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """
    连接 WhatsApp 并保持运行。

    显示配对二维码、连接状态变化和收到的消息，Ctrl+C 退出。
    """
    from tvon.whatsapp import create_manager
    from tvon.whatsapp.qr import render_qr_terminal

    _setup_logging(_settings_level(), verbose)
    manager = create_manager()

    def on_status(status) -> None:
        if status.qr:
            console.print("Scan the QR code with WhatsApp (Linked devices):\n")
            console.print(render_qr_terminal(status.qr))
        elif status.connected:
            who = status.identity.phone_number if status.identity else "unknown"
            console.print(f"[green]✓[/green] Connected as {who}")
        elif not status.connecting:
            console.print("[yellow]Disconnected[/yellow]")

    def on_message(message) -> None:
        media = f" [dim]({message.media.mimetype})[/dim]" if message.media else ""
        sender = message.sender_name or message.phone_number
        console.print(f"[cyan]{sender}[/cyan]: {message.text}{media}")

    async def main_loop():
        manager.on_status_change(on_status)
        manager.on_message(on_message)
        try:
            await manager.initialize()
            await asyncio.Event().wait()
        finally:
            await manager.disconnect()

    console.print(f"{__logo__} Starting WhatsApp session...")
    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


@app.command()
def send(
    number: str = typer.Argument(..., help="Destination phone number"),
    text: str = typer.Argument(..., help="Message text"),
    timeout: float = typer.Option(60.0, "--timeout", "-t", help="Seconds to wait for the connection"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """连接 WhatsApp 并发送一条文本消息。"""
    from tvon.whatsapp import create_manager
    from tvon.whatsapp.errors import WhatsAppError

    _setup_logging(_settings_level(), verbose)
    manager = create_manager()

    async def run_send():
        try:
            if not await _connect(manager, timeout):
                return None
            return await manager.send_text_message(number, text)
        finally:
            await manager.disconnect()

    try:
        result = asyncio.run(run_send())
    except WhatsAppError as e:
        console.print(f"[red]Failed to send: {e}[/red]")
        raise typer.Exit(1)

    if result is None:
        console.print("[red]WhatsApp did not connect in time[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Sent to {result.remote_jid} (id: {result.message_id})")


@app.command()
def check(
    number: str = typer.Argument(..., help="Phone number to check"),
    timeout: float = typer.Option(60.0, "--timeout", "-t", help="Seconds to wait for the connection"),
):
    """查询号码是否注册了 WhatsApp。"""
    from tvon.whatsapp import create_manager

    _setup_logging(_settings_level())
    manager = create_manager()

    async def run_check():
        try:
            if not await _connect(manager, timeout):
                return None
            return await manager.check_number_exists(number)
        finally:
            await manager.disconnect()

    exists = asyncio.run(run_check())
    if exists is None:
        console.print("[red]WhatsApp did not connect in time[/red]")
        raise typer.Exit(1)
    jid = manager.format_phone_number(number)
    if exists:
        console.print(f"[green]✓[/green] {jid} is on WhatsApp")
    else:
        console.print(f"[yellow]✗[/yellow] {jid} is not on WhatsApp")


@app.command()
def logout():
    """删除本地 WhatsApp 凭据。下次连接需要重新扫码配对。"""
    from tvon.whatsapp import create_manager

    _setup_logging(_settings_level())
    manager = create_manager()

    if asyncio.run(manager.delete_auth_info()):
        console.print("[green]✓[/green] WhatsApp credentials deleted")
    else:
        console.print("[red]Failed to delete WhatsApp credentials[/red]")
        raise typer.Exit(1)


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """
    显示 tvon 状态。

    展示内容：
    - 配置文件路径和状态
    - 凭据目录（是否已配对）
    - 桥接地址
    - 行为设置
    """
    from tvon.config.loader import get_config_path, load_config
    from tvon.config.loader import convert_to_camel
    from tvon.whatsapp.credentials import FileCredentialStore
    from tvon.whatsapp.settings_store import JsonSettingsStore

    config_path = get_config_path()
    config = load_config()
    creds = FileCredentialStore(config.auth_path)

    console.print(f"{__logo__} tvon Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Credentials: {creds.path} {'[green]✓ paired[/green]' if creds.exists() else '[dim]not paired[/dim]'}")
    console.print(f"Bridge: {config.bridge.url}")

    try:
        settings = JsonSettingsStore(config.settings_file).load()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if settings is None:
        console.print(f"Settings: {config.settings_file} [dim]not found, using defaults[/dim]")
        return

    table = Table(title="WhatsApp Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in convert_to_camel(settings.model_dump()).items():
        if key == "profilePicture" and value:
            value = "[SET]"
        table.add_row(key, "[dim]-[/dim]" if value is None else str(value))
    console.print(table)


if __name__ == "__main__":
    app()
