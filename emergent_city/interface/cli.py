"""
Terminal front end for the narrative engine.

Reads lines with prompt_toolkit, renders the city's replies with Rich and
saves after every command. Slash commands belong to the shell, not the
story:

    /quit        leave (the session is saved)
    /counters    toggle raw choice counters in STATUS
    /statusbar   toggle the trust/autonomy bar above the prompt
"""

import argparse
import logging
import random
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from ..config import load_balance_config, load_config, save_config
from ..content import EmergenceRuleLibrary, MomentLibrary, StoryBeatLibrary
from ..engine import EngineOutput, NarrativeEngine
from ..state import JsonProgressionStore, ProgressionState
from .parser import completion_words

logger = logging.getLogger(__name__)

console = Console()

THEME = {
    "primary": "steel_blue",
    "accent": "cyan",
    "warning": "dark_goldenrod",
    "dim": "dim",
    "text": "grey85",
}

BANNER = """\
847,293 people.
3.1 million footsteps an hour.
One city, waking up.

Type HELP if you're lost. Type GENERATE when you're ready."""


def status_bar(state: ProgressionState, width: int = 10) -> str:
    """Compact trust/autonomy meter shown above the prompt."""
    def bar(value: float) -> str:
        filled = round(value * width)
        return "█" * filled + "░" * (width - filled)

    return (
        f"Act {state.current_act}  "
        f"trust {bar(state.city_trust)}  "
        f"autonomy {bar(state.city_autonomy)}"
    )


def render_output(output: EngineOutput) -> None:
    if output.ending is not None:
        console.print(Panel(
            Text(output.text),
            title=f"[bold]{output.ending.title}[/bold]",
            border_style=THEME["accent"],
            padding=(1, 2),
        ))
        return

    if output.is_error:
        console.print(Text(output.text, style=THEME["dim"]))
        return

    style = THEME["text"] if output.is_dialogue else THEME["primary"]
    console.print(Text(output.text, style=style))

    if output.act_advanced_to is not None:
        console.print(f"[{THEME['accent']}]Act {output.act_advanced_to} begins.[/{THEME['accent']}]")


class GameShell:
    """Prompt loop around one NarrativeEngine."""

    def __init__(self, engine: NarrativeEngine, saves_dir: Path):
        self.engine = engine
        self.saves_dir = saves_dir
        self.completer = WordCompleter(completion_words(), ignore_case=True)
        self.running = True

    @property
    def config(self):
        return self.engine.player_config

    def run(self) -> None:
        session = PromptSession()
        console.print(Text(BANNER, style=THEME["text"]))
        console.print(f"[{THEME['dim']}]/quit to leave. Progress is saved after every command.[/{THEME['dim']}]\n")

        while self.running:
            if self.config.get("show_status_bar", True):
                console.print(f"[{THEME['dim']}]{status_bar(self.engine.state)}[/{THEME['dim']}]")

            try:
                line = session.prompt("> ", completer=self.completer).strip()
            except KeyboardInterrupt:
                console.print(f"[{THEME['dim']}]Use /quit to exit[/{THEME['dim']}]")
                continue
            except EOFError:
                break

            if not line:
                continue

            if line.startswith("/"):
                self.handle_slash(line)
                continue

            render_output(self.engine.process_command(line))
            self.persist()
            console.print()

        self.persist()
        console.print(f"[{THEME['dim']}]The city keeps running without you.[/{THEME['dim']}]")

    def handle_slash(self, line: str) -> None:
        name = line[1:].split()[0].lower() if line[1:].strip() else ""

        if name in ("quit", "q", "exit"):
            self.running = False
        elif name == "counters":
            self.toggle("debug_show_choice_counters")
        elif name == "statusbar":
            self.toggle("show_status_bar")
        else:
            console.print(f"[{THEME['dim']}]Shell commands: /quit, /counters, /statusbar[/{THEME['dim']}]")

    def toggle(self, key: str) -> None:
        self.config[key] = not self.config.get(key, False)
        state = "on" if self.config[key] else "off"
        console.print(f"[{THEME['dim']}]{key}: {state}[/{THEME['dim']}]")
        save_config(self.config, self.saves_dir)

    def persist(self) -> None:
        if not self.engine.save():
            console.print(f"[{THEME['warning']}]Could not save progress.[/{THEME['warning']}]")
            return
        if self.config.get("last_save_id") != self.engine.state.id:
            self.config["last_save_id"] = self.engine.state.id
            save_config(self.config, self.saves_dir)


def build_engine(
    saves_dir: Path,
    content_dir: Path | None = None,
    balance_path: Path | None = None,
    seed: int | None = None,
    resume: bool = True,
) -> NarrativeEngine:
    """Load content and preferences, then resume the last save if there is one."""
    config = load_config(saves_dir)
    engine = NarrativeEngine(
        moments=MomentLibrary(content_dir).all(),
        config=load_balance_config(balance_path),
        rng=random.Random(seed),
        store=JsonProgressionStore(saves_dir),
        player_config=config,
        emergence_rules=EmergenceRuleLibrary(content_dir).all(),
        story_beats=StoryBeatLibrary(content_dir).all(),
    )

    last_save = config.get("last_save_id")
    if resume and last_save:
        if engine.load(last_save):
            console.print(f"[{THEME['dim']}]Resuming act {engine.state.current_act}.[/{THEME['dim']}]")
        else:
            logger.warning(f"Last save {last_save} not found, starting fresh")

    return engine


def main():
    """
    Entry point.

    Usage:
        emergent-city
        emergent-city --new --seed 7
        python -m emergent_city --saves-dir ~/.emergent_city
    """
    parser = argparse.ArgumentParser(description="Emergent City - a city learning to think")
    parser.add_argument("--saves-dir", type=Path, default=Path("saves"), help="Where saves and preferences live")
    parser.add_argument("--content-dir", type=Path, default=None, help="Override the bundled content")
    parser.add_argument("--balance", type=Path, default=None, help="JSON file of balance overrides")
    parser.add_argument("--seed", type=int, default=None, help="Seed the city's randomness")
    parser.add_argument("--new", action="store_true", help="Ignore the last save and start fresh")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log engine events")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    engine = build_engine(
        args.saves_dir,
        content_dir=args.content_dir,
        balance_path=args.balance,
        seed=args.seed,
        resume=not args.new,
    )
    GameShell(engine, args.saves_dir).run()


if __name__ == "__main__":
    main()
