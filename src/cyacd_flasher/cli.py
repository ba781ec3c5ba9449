"""
CYACD Flasher CLI

Inspect CYACD images and flash them to a device over a serial port.
"""

import sys
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn

from cyacd_flasher.config import DEFAULT_BAUDRATE, DEFAULT_TIMEOUT, MAX_CHUNK_SIZE, SerialSettings
from cyacd_flasher.cyacd import scan_image
from cyacd_flasher.errors import BootloadError
from cyacd_flasher.protocol import SerialConnection
from cyacd_flasher.session import BootloadSession

console = Console()

app = typer.Typer(help="CYACD firmware flasher for serial bootloaders")


def setup_logging(verbose: bool) -> None:
    """Route package logs through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def require_image(image: str) -> Path:
    """Return the image path, exiting if it does not exist."""
    path = Path(image)
    if not path.is_file():
        print_error(f"File not found: {image}")
        raise typer.Exit(1)
    return path


@app.command()
def ports() -> None:
    """List available serial ports."""
    import serial.tools.list_ports

    print_header("Available Serial Ports")
    ports_list = list(serial.tools.list_ports.comports())

    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Description", style="green")
    table.add_column("HWID", style="magenta")

    for port in ports_list:
        table.add_row(port.device, port.description or "-", port.hwid or "-")

    console.print(table)


@app.command()
def inspect(
    image: str = typer.Argument(..., help="Path to .cyacd image"),
    verify_row_checksums: bool = typer.Option(
        False, "--verify-row-checksums", help="Check every row's stored checksum"
    ),
) -> None:
    """Parse an image and show its header and row statistics."""
    path = require_image(image)
    print_header(f"Inspect {path.name}")

    try:
        with path.open("r", encoding="ascii", errors="replace") as f:
            stats = scan_image(f, verify_row_checksums=verify_row_checksums)
    except BootloadError as e:
        print_error(f"Invalid image: {e}")
        raise typer.Exit(1)

    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Silicon ID", f"0x{stats.header.silicon_id:08X}")
    table.add_row("Silicon revision", f"0x{stats.header.silicon_rev:02X}")
    table.add_row("Checksum type", stats.header.checksum_type.name)
    table.add_row("Rows", str(stats.row_count))
    table.add_row("Data bytes", f"{stats.data_bytes:,}")
    table.add_row("Arrays", ", ".join(str(a) for a in sorted(stats.array_ids)) or "-")
    console.print(table)

    if verify_row_checksums:
        print_success("All row checksums match")


@app.command()
def flash(
    image: str = typer.Argument(..., help="Path to .cyacd image"),
    port: str = typer.Option(..., "--port", "-p", help="Serial port (e.g., /dev/ttyACM0)"),
    baudrate: int = typer.Option(DEFAULT_BAUDRATE, "--baud", "-b", help="Baud rate"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", "-t", help="Read/write timeout in seconds"),
    chunk_size: int = typer.Option(MAX_CHUNK_SIZE, "--chunk-size", help="Max data bytes per packet"),
    verify_row_checksums: bool = typer.Option(
        False, "--verify-row-checksums", help="Check each row's stored checksum before sending it"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every packet"),
) -> None:
    """Flash a CYACD image through the device bootloader."""
    setup_logging(verbose)
    path = require_image(image)

    try:
        settings = SerialSettings(port=port, baudrate=baudrate, timeout=timeout)
    except ValueError as e:
        raise typer.BadParameter(str(e))
    if not 1 <= chunk_size <= MAX_CHUNK_SIZE:
        raise typer.BadParameter(f"Invalid chunk size: {chunk_size} (1-{MAX_CHUNK_SIZE})")

    print_header(f"Flash {path.name} -> {port}")

    try:
        with path.open("r", encoding="ascii", errors="replace") as f:
            stats = scan_image(f, verify_row_checksums=verify_row_checksums)
    except BootloadError as e:
        print_error(f"Invalid image: {e}")
        raise typer.Exit(1)

    connection = SerialConnection.from_settings(settings)

    try:
        with Progress(
            TextColumn("[{task.description}]"),
            BarColumn(),
            TextColumn("[{task.completed}/{task.total} rows]"),
            console=console,
        ) as progress:
            task = progress.add_task("Flashing...", total=stats.row_count)
            session = BootloadSession(
                connection,
                chunk_size=chunk_size,
                progress_cb=lambda row, done: progress.update(task, completed=done),
                verify_row_checksums=verify_row_checksums,
            )
            with path.open("r", encoding="ascii", errors="replace") as f:
                summary = session.run(f)
    except BootloadError as e:
        print_error(f"Flash failed during {session.phase.value}: {e}")
        connection.close()
        raise typer.Exit(1)

    print_success(
        f"Flashed {summary.rows} rows ({summary.data_bytes:,} bytes, {summary.packets} packets)"
    )


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
