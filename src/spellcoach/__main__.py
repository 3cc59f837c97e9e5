"""Print a learner's practice report."""
import argparse
import logging
import sys
from typing import List, Optional

from spellcoach.exceptions import InsufficientWordsError
from spellcoach.logging_config import setup_logging
from spellcoach.models.base import SessionLocal, init_db
from spellcoach.monitoring import start_monitoring
from spellcoach.services.word_bank_service import WordBankService

logger = logging.getLogger(__name__)


def format_report(service: WordBankService, learner_id: int) -> List[str]:
    dashboard = service.get_dashboard(learner_id)
    lines = [
        f"{dashboard.mission.title} {dashboard.mission.subtitle}",
        f"Words: {dashboard.active_words} active / {dashboard.total_words} total",
        f"Mastered: {dashboard.mastered_words}",
        f"Due now: {dashboard.words_due}",
        f"Accuracy: {dashboard.accuracy:.0%}",
        f"Streak: {dashboard.streak} days (best {dashboard.best_streak})",
        f"New words left today: {dashboard.new_words_remaining}",
    ]
    if dashboard.struggling:
        lines.append("Struggling words:")
        for item in dashboard.struggling:
            patterns = ", ".join(item.pattern_names) or "-"
            lines.append(f"  {item.word.text}: {item.accuracy_percent}% of {item.attempts} [{patterns}]")
    earned = [a.definition.name for a in dashboard.achievements if a.is_earned]
    if earned:
        lines.append(f"Badges: {', '.join(earned)}")
    for recommendation in dashboard.recommendations:
        lines.append(f"* {recommendation.message}")

    try:
        plan = service.start_session(learner_id)
        lines.append(f"Next session: {', '.join(plan.words)}")
    except InsufficientWordsError as e:
        lines.append(f"Next session: {e}")
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="spellcoach", description=__doc__)
    parser.add_argument("--learner", required=True, help="learner name")
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")
    parser.add_argument("--metrics-port", type=int, default=None, help="expose Prometheus metrics on this port")
    args = parser.parse_args(argv)

    setup_logging("Starting spellcoach report", args.log_level or "WARNING")
    if args.metrics_port:
        start_monitoring(args.metrics_port)
    init_db()
    db = SessionLocal()
    try:
        service = WordBankService(db)
        learner = service.get_learner_by_name(args.learner)
        if learner is None:
            logger.error(f"Learner {args.learner!r} not found")
            return 1
        print("\n".join(format_report(service, learner.id)))
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
