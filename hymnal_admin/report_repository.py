"""User-submitted song reports stored at song_reports/{reportId}."""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from hymnal_admin.database import as_dict, parse_timestamp, utc_now
from hymnal_admin.errors import NotFoundError, ValidationError
from hymnal_admin.models import ReportStatus, SongReport

logger = logging.getLogger(__name__)

REPORTS_PATH = 'song_reports'

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class SongReportRepository:
    """Reads and moderates song reports."""

    def __init__(self, root, clock=utc_now):
        self.reports_ref = root.child(REPORTS_PATH)
        self._clock = clock

    def generate_report_id(self) -> str:
        """report_{epoch millis}_{microsecond}, the format the app uses."""
        now = self._clock()
        return f"report_{int(now.timestamp() * 1000)}_{now.microsecond}"

    def submit_report(self, report: SongReport) -> str:
        if not report.id:
            report.id = self.generate_report_id()
        if not report.created_at:
            report.created_at = self._clock().isoformat()
        self.reports_ref.child(report.id).set(report.to_dict())
        logger.info("Report %s submitted for song %s", report.id, report.song_number)
        return report.id

    def _parse_all(self) -> List[SongReport]:
        reports = []
        for key, data in as_dict(self.reports_ref.get()).items():
            if not isinstance(data, dict):
                continue
            try:
                report = SongReport.from_dict(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Error parsing report %s: %s", key, e)
                continue
            if not report.id:
                report.id = key
            reports.append(report)
        return reports

    def get_all_reports(self) -> List[SongReport]:
        """All reports, most recent first."""
        reports = self._parse_all()
        reports.sort(key=lambda r: parse_timestamp(r.created_at) or _EPOCH, reverse=True)
        return reports

    def get_report(self, report_id: str) -> SongReport:
        """One report by id; records missing createdAt are still returned."""
        data = self.reports_ref.child(report_id).get()
        if not isinstance(data, dict):
            raise NotFoundError('Report', report_id)
        report = SongReport.from_dict(data, strict=False)
        report.id = report.id or report_id
        return report

    def _require_report(self, report_id: str):
        ref = self.reports_ref.child(report_id)
        if ref.get() is None:
            raise NotFoundError('Report', report_id)
        return ref

    def get_reports_for_song(self, song_number: str) -> List[SongReport]:
        return [r for r in self.get_all_reports() if r.song_number == str(song_number)]

    def get_reports_by_status(self, status: str) -> List[SongReport]:
        return [r for r in self.get_all_reports() if r.status == status]

    def update_report_status(self, report_id: str, status: str,
                             admin_response: Optional[str] = None) -> SongReport:
        """Move a report through pending -> resolved/dismissed (or back)."""
        try:
            status = ReportStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown report status: {status}", field='status')
        ref = self._require_report(report_id)

        updates = {'status': status}
        if status == ReportStatus.PENDING.value:
            updates['resolvedAt'] = None
        else:
            updates['resolvedAt'] = self._clock().isoformat()
        if admin_response:
            updates['adminResponse'] = admin_response

        ref.update(updates)
        logger.info("Report %s -> %s", report_id, status)
        return self.get_report(report_id)

    def delete_report(self, report_id: str) -> None:
        self._require_report(report_id).delete()
        logger.info("Report %s deleted", report_id)

    def get_statistics(self) -> Dict[str, int]:
        reports = self._parse_all()
        stats = {'total': len(reports)}
        for status in ReportStatus:
            stats[status.value] = sum(1 for r in reports if r.status == status.value)
        return stats

    def has_user_reported_song(self, song_number: str, email: str) -> bool:
        """True when the user already has a pending report on this song."""
        email = (email or '').lower()
        return any(r.reporter_email.lower() == email and r.status == ReportStatus.PENDING.value
                   for r in self.get_reports_for_song(song_number))
