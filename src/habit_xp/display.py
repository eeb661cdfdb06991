"""Rich terminal display for habit-xp."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from habit_xp.ledger import DailyLimit, DailyLimitStatistics, LimitState
from habit_xp.levels import LevelInfo, LevelPreview
from habit_xp.models import Activity, Category, ExpCalculationResult, Outcome

console = Console()

_CATEGORY_COLORS: dict[Category, str] = {
    Category.HEALTH: "green3",
    Category.LEARNING: "deep_sky_blue1",
    Category.RELATIONSHIP: "hot_pink",
    Category.ACHIEVEMENT: "gold1",
}

_OUTCOME_STYLES: dict[Outcome, str] = {
    Outcome.GRANTED: "green",
    Outcome.CAPPED: "yellow",
    Outcome.REJECTED: "red",
    Outcome.RESTRICTED: "red",
}


def category_color(category: Category) -> str:
    return _CATEGORY_COLORS.get(category, "white")


def format_number(n: int) -> str:
    """Format large numbers: 421543 -> '421.5K', 1200 -> '1,200', 1234567 -> '1.2M'."""
    if n >= 1_000_000:
        value = n / 1_000_000
        if value >= 100:
            return f"{value:.0f}M"
        return f"{value:.1f}M"
    if n >= 10_000:
        value = n / 1_000
        if value >= 1000:
            return f"{value:.0f}K"
        return f"{value:.1f}K"
    return f"{n:,}"


def _xp_bar(current: int, total: int, width: int = 20) -> str:
    """Render a progress bar as text: [████████░░░░░░░░░░░░]."""
    if total <= 0:
        return "[" + "█" * width + "]"
    ratio = min(current / total, 1.0)
    filled = int(ratio * width)
    empty = width - filled
    return "[" + "█" * filled + "░" * empty + "]"


def print_calculation_result(activity: Activity, result: ExpCalculationResult) -> None:
    """Print the award for one activity with its bonus/penalty breakdown."""
    color = category_color(activity.category)
    style = _OUTCOME_STYLES[result.outcome]

    lines: list[str] = [""]
    lines.append(f"  [bold {color}]{activity.name}[/] ({activity.category.value}, quality {activity.quality.value})")
    lines.append(f"  [bold {style}]+{format_number(result.final_exp)} EXP[/]  [{style}]{result.outcome.value}[/]")

    if result.outcome in (Outcome.GRANTED, Outcome.CAPPED):
        lines.append("")
        lines.append(f"  Base: {result.base_exp} x {result.quality_multiplier:g}")
        for bonus in result.bonuses:
            lines.append(f"  [green]+{bonus.magnitude:.0%}[/] {bonus.label}  [dim]{bonus.rationale}[/]")
        for penalty in result.penalties:
            lines.append(f"  [red]-{penalty.magnitude:.0%}[/] {penalty.label}  [dim]{penalty.rationale}[/]")
        if result.was_capped:
            lines.append(f"  [yellow]Capped at {result.capped_at} (composed {result.composed_exp})[/]")
        if result.remaining_today is not None:
            lines.append(f"  Remaining today: {format_number(result.remaining_today)}")

    if result.warnings:
        lines.append("")
        for warning in result.warnings:
            lines.append(f"  ⚠️  {warning}")
    lines.append("")

    console.print(
        Panel("\n".join(lines), title="[bold]EXPERIENCE[/]", box=box.ROUNDED, border_style=color, width=60)
    )


def print_level_info(info: LevelInfo, title: str = "Level") -> None:
    """Print a level readout with a progress bar."""
    lines: list[str] = [""]
    prestige = f"  ★{info.prestige_level}" if info.prestige_level is not None else ""
    lines.append(f"  [bold]Level {info.level}[/]{prestige}")
    bar = _xp_bar(info.current_level_exp, info.required_exp_for_level)
    lines.append(
        f"  {bar} {format_number(info.current_level_exp)}/{format_number(info.required_exp_for_level)}"
        f" ({info.progress_percent:.1f}%)"
    )
    lines.append(f"  Total: [bold]{format_number(info.total_exp)}[/] EXP")
    lines.append(f"  Next level needs: {format_number(info.next_level_required_exp)}")
    lines.append("")
    console.print(Panel("\n".join(lines), title=f"[bold]{title}[/]", box=box.ROUNDED, width=50))


def print_category_levels(levels: dict[Category, LevelInfo]) -> None:
    """Print one row per category with level and progress."""
    table = Table(title="Levels", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Category", style="bold")
    table.add_column("Level", justify="right")
    table.add_column("Progress")
    table.add_column("Total EXP", justify="right")
    for category, info in levels.items():
        table.add_row(
            f"[{category_color(category)}]{category.value}[/]",
            str(info.level),
            f"{_xp_bar(info.current_level_exp, info.required_exp_for_level, width=12)} {info.progress_percent:.0f}%",
            format_number(info.total_exp),
        )
    console.print(table)


def print_daily_limits(limits: list[DailyLimit], minutes_until_reset: int) -> None:
    """Print today's caps and usage per category."""
    table = Table(title="Daily Limits", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Category", style="bold")
    table.add_column("Granted", justify="right")
    table.add_column("Cap", justify="right")
    table.add_column("Activities", justify="right")
    table.add_column("State")
    for limit in limits:
        state_style = "red" if limit.state == LimitState.EXHAUSTED else "green"
        cap = f"{limit.base_cap}+{limit.bonus_cap}" if limit.bonus_cap else str(limit.base_cap)
        table.add_row(
            f"[{category_color(limit.category)}]{limit.category.value}[/]",
            format_number(limit.granted_so_far),
            cap,
            f"{limit.activity_count} ({limit.unique_activity_count} unique)",
            f"[{state_style}]{limit.state.value}[/]",
        )
    console.print(table)
    hours, minutes = divmod(minutes_until_reset, 60)
    console.print(f"  Resets in {hours}h {minutes:02d}m")


def print_statistics(stats: DailyLimitStatistics) -> None:
    """Print a multi-day summary of grants."""
    table = Table(
        title=f"Last {stats.total_days} Days", box=box.ROUNDED, show_header=True, header_style="bold"
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Active Days", f"{stats.active_days}/{stats.total_days}")
    table.add_row("Total EXP", format_number(stats.total_exp))
    table.add_row("Daily Average", f"{stats.average_daily:.1f}")
    table.add_row("Current Streak", f"{stats.current_streak} days")
    table.add_row("Violations", str(stats.violation_count))
    table.add_section()
    for category, breakdown in stats.category_breakdown.items():
        table.add_row(
            f"  [{category_color(category)}]{category.value}[/]",
            f"{format_number(breakdown.total_exp)} ({breakdown.average_daily:.1f}/day)",
        )
    console.print(table)


def print_level_preview(previews: list[LevelPreview]) -> None:
    """Print upcoming level requirements."""
    table = Table(title="Upcoming Levels", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Level", justify="right", style="bold")
    table.add_column("Required", justify="right")
    table.add_column("Total Needed", justify="right")
    table.add_column("Milestone")
    for preview in previews:
        table.add_row(
            str(preview.level),
            format_number(preview.required_exp),
            format_number(preview.total_exp_needed),
            preview.milestone or "",
        )
    console.print(table)


def print_sweep_result(removed: int) -> None:
    console.print(f"[green]Removed {removed} expired daily limit entries.[/]")


def print_error(message: str) -> None:
    console.print(f"[red]{message}[/]")


def print_time_advice(advice: dict) -> None:
    """Print the time-of-day standing per category and the user's activity pattern."""
    table = Table(
        title=f"Time of Day ({advice['hour']:02d}:00)", box=box.ROUNDED, show_header=True, header_style="bold"
    )
    table.add_column("Category", style="bold")
    table.add_column("Now")
    table.add_column("Multiplier", justify="right")
    table.add_column("Next Good Hour")
    for name, row in advice["categories"].items():
        if row["restricted"]:
            now = "[red]restricted[/]"
        elif row["good_time"]:
            now = f"[green]{row['label']}[/]"
        else:
            now = f"[yellow]{row['label']}[/]"
        upcoming = row["next_good_time"]
        if upcoming is None:
            upcoming_text = "[dim]none today[/]"
        else:
            upcoming_text = f"{upcoming['hour']:02d}:00 {upcoming['label']}"
            if upcoming["is_bonus"]:
                upcoming_text += " [green](bonus)[/]"
        table.add_row(
            f"[{category_color(Category(name))}]{name}[/]",
            now,
            f"×{row['multiplier']:.2f}",
            upcoming_text,
        )
    console.print(table)

    patterns = advice["patterns"]
    if not patterns["most_active_hours"]:
        console.print("[dim]No activity history yet.[/]")
        return
    busiest = ", ".join(f"{hour:02d}:00 ({count})" for hour, count in patterns["most_active_hours"])
    console.print(f"  Most active: {busiest}")
    console.print(
        f"  Night owl {patterns['night_owl_score']}  "
        f"Morning person {patterns['morning_person_score']}  "
        f"Healthy pattern {patterns['healthy_pattern_score']}"
    )
    for tip in patterns["recommendations"]:
        console.print(f"  [dim]•[/] {tip}")
