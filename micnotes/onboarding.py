from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from .config import CONFIG_PATH, ConfigError, load_config, save_config, validate_api_key
from .models import Config, ConversationKind, Language


def run_onboarding(console: Console | None = None) -> Config:
    console = console or Console()

    welcome_text = Text()
    welcome_text.append("🎤 Welcome to micnotes!\n\n", style="bold cyan")
    welcome_text.append("Record conversations, get transcripts and summaries\n", style="dim")

    console.print(Panel(welcome_text, border_style="cyan", expand=False))
    console.print()

    try:
        config = load_config()
    except ConfigError:
        config = Config()

    console.print("[bold]OpenAI API Key[/bold]")
    console.print("(Get one at https://platform.openai.com/api-keys; it starts with 'sk-')")
    while True:
        api_key = Prompt.ask("API Key", password=True, default=config.openai_api_key or "")
        if not api_key:
            console.print("[yellow]Skipping; set OPENAI_API_KEY or run 'micnotes login' later.[/yellow]")
            break
        try:
            config.openai_api_key = validate_api_key(api_key)
            break
        except ConfigError as exc:
            console.print(f"[red]{exc}[/red]")

    console.print()
    console.print("[bold]Default language[/bold]")
    for language in Language:
        console.print(f"  {language.value}  {language.display_name}")
    config.default_language = Prompt.ask(
        "Language",
        choices=[language.value for language in Language],
        default=config.default_language,
    )

    console.print()
    console.print("[bold]Default conversation type[/bold]")
    for kind in ConversationKind:
        console.print(f"  {kind.value:<11} {kind.display_name}")
    config.default_kind = Prompt.ask(
        "Type",
        choices=[kind.value for kind in ConversationKind],
        default=config.default_kind,
    )

    console.print()
    console.print("[bold green]✓ Setup Complete![/bold green]")
    console.print()

    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column(style="cyan")
    summary.add_column()

    summary.add_row("API key:", "configured" if config.openai_api_key else "not set")
    summary.add_row("Language:", Language(config.default_language).display_name)
    summary.add_row("Type:", ConversationKind(config.default_kind).display_name)

    console.print(Panel(summary, title="Your Configuration", border_style="green"))
    console.print()

    if Confirm.ask("Save this configuration?", default=True):
        save_config(config)
        console.print("[green]Configuration saved to[/green]", CONFIG_PATH)
        console.print()
        console.print("[bold]To process a recording, run:[/bold]")
        console.print("  [cyan]micnotes process <audio-file>[/cyan]")
        console.print()
        return config
    else:
        console.print("[yellow]Configuration not saved. Run 'micnotes setup' to try again.[/yellow]")
        return config
