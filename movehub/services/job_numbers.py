"""Human-readable job numbers: JOB-YYYYMMDD-NNNN, sequence restarting every day."""
import re
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ..models.models import Job


JOB_NUMBER_RE = re.compile(r"^JOB-(\d{8})-(\d{4,})$")


def format_job_number(day: datetime, sequence: int) -> str:
    return f"JOB-{day.strftime('%Y%m%d')}-{sequence:04d}"


def parse_sequence(job_number: str) -> Optional[int]:
    m = JOB_NUMBER_RE.match(job_number or "")
    return int(m.group(2)) if m else None


def next_job_number(db: Session, now: Optional[datetime] = None) -> str:
    """Next free number for the day of `now` (UTC).

    Uses the highest sequence already issued for that day rather than a count
    of jobs, so deleted jobs never cause a number to be handed out twice.
    """
    now = now or datetime.now(timezone.utc)
    prefix = f"JOB-{now.strftime('%Y%m%d')}-"
    numbers = db.query(Job.job_number).filter(Job.job_number.like(f"{prefix}%")).all()
    highest = 0
    for (number,) in numbers:
        seq = parse_sequence(number)
        if seq is not None and seq > highest:
            highest = seq
    return format_job_number(now, highest + 1)
