"""
deploykit - UI Components & Branding
Standardized headers and banner
"""

from rich.console import Console

LOGO = "deploykit"

# Color scheme
BRAND_COLOR = "cyan"
SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"

BANNER = """
[bold cyan]╔═══════════════════════════════════════════════════════════╗[/bold cyan]
[bold cyan]║[/bold cyan]  [bold white]deploykit[/bold white] - SST deployment setup & orchestration    [bold cyan]║[/bold cyan]
[bold cyan]╚═══════════════════════════════════════════════════════════╝[/bold cyan]
"""


def show_header(
    title: str,
    subtitle: str = None,
    stage: str = None,
    details: dict = None,
    console: Console = None,
):
    """
    Display a standardized deploykit command header.

    Args:
        title: Main title (e.g., "Setup & Deploy", "Deployment Cache")
        subtitle: Optional subtitle line
        stage: Target stage (if known)
        details: Additional key-value pairs to display
        console: Rich Console instance (creates new if None)

    Example:
        show_header(
            title="Setup & Deploy",
            stage="dev",
            details={"Mode": "Check only"}
        )
    """
    if console is None:
        console = Console()

    prefix = f" [bold color(214)]{LOGO}[/bold color(214)] [dim]›[/dim]"
    console.print(f"{prefix} [bold white]{title}[/bold white]")

    if subtitle:
        console.print(f"{prefix} [dim]{subtitle}[/dim]")

    if stage:
        console.print(f"{prefix} Stage: [{BRAND_COLOR}]{stage}[/{BRAND_COLOR}]")

    if details:
        for key, value in details.items():
            console.print(f"{prefix} {key}: [{BRAND_COLOR}]{value}[/{BRAND_COLOR}]")

    console.print()
