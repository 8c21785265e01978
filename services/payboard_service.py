# services/payboard_service.py
"""
Payboard - tattoo jobs, the payments made on them and monthly revenue.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, select

from models import db, Contact, Job, Location, Payment
from services.exceptions import ValidationError
from utils import parse_id, to_date, to_naive_utc

STATUS_ALIASES = {
    'in arbeit': 'in_arbeit',
    'fertig': 'abgeschlossen',
}


def normalize_status(status: Optional[str]) -> str:
    """Map free-text job states onto Job.STATUSES; anything unknown is 'geplant'."""
    value = (status or '').strip().lower()
    value = STATUS_ALIASES.get(value, value)
    return value if value in Job.STATUSES else 'geplant'


def _cents(value, code, default=None):
    if value is None or value == '':
        if default is None:
            raise ValidationError(code)
        return default
    try:
        cents = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(code)
    if cents < 0:
        raise ValidationError(code)
    return cents


def _id(data, key):
    value = parse_id(data.get(key))
    if value is None:
        raise ValidationError(f'invalid_{key}', field=key)
    return value


def month_range(month: Optional[str]):
    """
    Parse ``YYYY-MM`` / ``YYYY-MM-DD`` to the half-open range [first day, next first day).

    An empty value means the current month.
    """
    if month:
        parsed = to_date(month if len(month) > 7 else f'{month}-01')
        if parsed is None:
            raise ValidationError('invalid_month')
        start = parsed.replace(day=1)
    else:
        start = date.today().replace(day=1)

    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def _as_datetime(day: date) -> datetime:
    return datetime(day.year, day.month, day.day)


def _location_filter(location_id):
    return location_id and location_id != 'all'


def list_jobs(month=None, location_id=None):
    """
    All jobs (newest first) with their payment totals.

    ``paid_in_month_cents`` is only non-zero when a month is given.
    """
    query = Job.query.order_by(Job.created_at.desc(), Job.id.desc())
    if _location_filter(location_id):
        query = query.filter(Job.location_id == int(location_id))
    jobs = query.all()

    job_ids = [job.id for job in jobs]
    paid_total = {}
    paid_in_month = {}

    if job_ids:
        rows = db.session.execute(
            select(Payment.job_id, func.sum(Payment.paid_cents))
            .where(Payment.job_id.in_(job_ids))
            .group_by(Payment.job_id)
        ).all()
        paid_total = {job_id: int(total or 0) for job_id, total in rows}

        if month:
            start, end = month_range(month)
            rows = db.session.execute(
                select(Payment.job_id, func.sum(Payment.paid_cents))
                .where(
                    Payment.job_id.in_(job_ids),
                    Payment.paid_at >= _as_datetime(start),
                    Payment.paid_at < _as_datetime(end),
                )
                .group_by(Payment.job_id)
            ).all()
            paid_in_month = {job_id: int(total or 0) for job_id, total in rows}

    result = []
    for job in jobs:
        data = job.to_dict()
        paid = paid_total.get(job.id, 0)
        data['contact'] = {
            'id': job.contact.id,
            'name': job.contact.display_name,
            'phone_e164': job.contact.phone_e164,
        }
        data['location'] = {'id': job.location.id, 'name': job.location.name}
        data['paid_total_cents'] = paid
        data['paid_in_month_cents'] = paid_in_month.get(job.id, 0)
        data['open_cents'] = max(0, job.total_cents - paid)
        result.append(data)
    return result


def create_job(data: dict) -> Job:
    """
    Create a job. Caller commits.

    Raises:
        ValidationError: missing contact/location or invalid amounts
    """
    if not data.get('contact_id') or not data.get('location_id'):
        raise ValidationError('missing_required_fields')

    total = _cents(data.get('total_cents'), 'invalid_total_cents')
    deposit = _cents(data.get('deposit_cents'), 'invalid_deposit_cents', default=0)

    contact_id = _id(data, 'contact_id')
    location_id = _id(data, 'location_id')

    if db.session.get(Contact, contact_id) is None:
        raise ValidationError('contact_not_found', field='contact_id')
    if db.session.get(Location, location_id) is None:
        raise ValidationError('location_not_found', field='location_id')

    job = Job(
        contact_id=contact_id,
        location_id=location_id,
        artist_free_text=(data.get('artist_free_text') or '').strip() or None,
        session_date=to_date(data.get('session_date')),
        total_cents=total,
        deposit_cents=deposit,
        status=normalize_status(data.get('status')),
    )
    db.session.add(job)
    return job


def create_payment(data: dict) -> Payment:
    """
    Record a payment against a job. Caller commits.

    Raises:
        ValidationError: missing job or a non-positive amount
    """
    if not data.get('job_id'):
        raise ValidationError('missing_job_id')

    try:
        paid = int(round(float(data.get('paid_cents'))))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError('invalid_paid_cents')
    if paid <= 0:
        raise ValidationError('invalid_paid_cents')

    job_id = _id(data, 'job_id')
    if db.session.get(Job, job_id) is None:
        raise ValidationError('job_not_found', field='job_id')

    payment = Payment(
        job_id=job_id,
        paid_cents=paid,
        method=(data.get('method') or '').strip() or None,
    )
    paid_at = to_naive_utc(data.get('paid_at'))
    if paid_at is not None:
        payment.paid_at = paid_at
    db.session.add(payment)
    return payment


def monthly_revenue(month=None, location_id=None) -> dict:
    """Revenue and payment count for payments in the month, plus jobs with a session in it."""
    start, end = month_range(month)

    payments = (
        select(func.coalesce(func.sum(Payment.paid_cents), 0), func.count(Payment.id))
        .join(Job, Payment.job_id == Job.id)
        .where(Payment.paid_at >= _as_datetime(start), Payment.paid_at < _as_datetime(end))
    )
    jobs = select(func.count(Job.id)).where(Job.session_date >= start, Job.session_date < end)

    if _location_filter(location_id):
        payments = payments.where(Job.location_id == int(location_id))
        jobs = jobs.where(Job.location_id == int(location_id))

    revenue, payments_count = db.session.execute(payments).one()

    return {
        'month': start.isoformat(),
        'revenue_cents': int(revenue or 0),
        'payments_count': int(payments_count or 0),
        'jobs_count': int(db.session.scalar(jobs) or 0),
    }
