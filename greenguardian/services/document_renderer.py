"""
document_renderer.py — Printable HTML documents.

The portal opens these in a new tab and the user prints them to PDF, so each
document is one self-contained HTML page with inline CSS and no external
assets. Templates live in TEMPLATES below and are rendered through a Jinja2
environment with autoescaping on, so stored values never need escaping here.

    render_certificate_html(certificate_doc, sponsor_name="EcoCorp")
    render_incident_report_html(report)       # IncidentReportOut
"""

from datetime import datetime
from typing import Optional

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from greenguardian.core.config import settings
from greenguardian.models.incident import IncidentReportOut

TEMPLATES = {
    "certificate.html": """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Certificate of Participation - {{ name }}</title>
<style>
body { font-family: Georgia, serif; margin: 0; padding: 40px; background: #f0f4f0; }
.certificate { background: #fff; max-width: 800px; margin: 0 auto; padding: 60px;
               border: 20px solid #2d3748; text-align: center; }
.title { font-size: 36px; letter-spacing: 4px; color: #2d3748; }
.subtitle { font-size: 16px; color: #4a5568; margin-bottom: 40px; }
.recipient-name { font-size: 42px; color: #2f855a; margin: 16px 0 32px; }
.challenge-name { font-size: 24px; font-weight: bold; margin: 12px 0; }
.footer { display: flex; justify-content: space-around; margin-top: 48px; }
.signature-line { border-top: 2px solid #2d3748; width: 180px; margin: 0 auto 8px; }
.verification, .cert-number { font-size: 12px; color: #718096; margin-top: 24px; }
@media print { body { background: #fff; padding: 0; } }
</style>
</head>
<body>
<div class="certificate">
  <div class="title">CERTIFICATE OF PARTICIPATION</div>
  <div class="subtitle">GreenGuardian Environmental Initiative</div>
  <div class="recipient-label">This certificate is proudly presented to</div>
  <div class="recipient-name">{{ name }}</div>
  <div class="description">
    For outstanding participation and commitment to environmental sustainability
    through active engagement in the
    <div class="challenge-name">{{ challenge }}</div>
    initiative.
  </div>
  <div class="footer">
    <div class="signature"><div class="signature-line"></div>
      <div class="signature-label">GreenGuardian Team</div></div>
    {% if sponsor_name %}
    <div class="signature"><div class="signature-line"></div>
      <div class="signature-label">{{ sponsor_name }}</div></div>
    {% endif %}
    <div class="signature"><div class="signature-label">Issue Date</div>
      <div>{{ issue_date | long_date }}</div></div>
  </div>
  <div class="verification">Verify this certificate at: {{ verify_url }}</div>
  <div class="cert-number">Certificate Number: {{ number }}</div>
</div>
</body>
</html>
""",
    "incident_report.html": """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Incident Report - {{ report.title }}</title>
<style>
body { font-family: Arial, sans-serif; margin: 40px; color: #1a202c; }
h1 { color: #2f855a; margin-bottom: 4px; }
table { border-collapse: collapse; width: 100%; margin: 16px 0; }
th, td { text-align: left; padding: 6px 10px; border-bottom: 1px solid #e2e8f0; }
th { width: 200px; color: #4a5568; }
.photos img { max-width: 240px; margin: 4px; }
.response { background: #f0fff4; padding: 12px; border-left: 4px solid #2f855a; }
</style>
</head>
<body>
<h1>{{ report.title }}</h1>
<table>
{% for label, value in rows %}
<tr><th>{{ label }}</th><td>{{ value }}</td></tr>
{% endfor %}
</table>
<h2>Description</h2>
<p>{{ report.description }}</p>
<div class="photos">{% for url in report.photos %}<img src="{{ url }}" alt="evidence">{% endfor %}</div>
{% if report.government_response %}
<h2>Government response</h2>
<div class="response">{{ report.government_response }}</div>
{% endif %}
</body>
</html>
""",
}


def _long_date(value: Optional[datetime]) -> str:
    return value.strftime("%B %d, %Y") if value else "—"


env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
)
env.filters["long_date"] = _long_date


def verification_url(certificate_number: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/verify/{certificate_number}"


def render_certificate_html(certificate: dict, sponsor_name: Optional[str] = None) -> str:
    """Certificate of participation for one completed challenge."""
    number = certificate.get("certificate_number") or ""
    return env.get_template("certificate.html").render(
        name=certificate.get("user_name") or "Participant",
        challenge=certificate.get("challenge_title") or "",
        number=number,
        issue_date=certificate.get("issue_date"),
        sponsor_name=sponsor_name,
        verify_url=verification_url(number),
    )


def render_incident_report_html(report: IncidentReportOut) -> str:
    """One-page incident summary for the government print-out."""
    coords = report.location.coordinates
    gps = f"{coords.latitude:.5f}, {coords.longitude:.5f}" if coords else "—"

    rows = [
        ("Report ID", report.id),
        ("Type", report.incident_type),
        ("Status", report.status),
        ("Priority", report.priority),
        ("Reported by", report.reporter_name),
        ("Reporter reputation", report.reporter_reputation),
        ("Submitted", _long_date(report.timestamp)),
        ("Address", report.location.address or "—"),
        ("GPS", gps),
        ("Community votes", f"{report.accuracy.upvotes} up / {report.accuracy.downvotes} down"),
        ("Related reports", ", ".join(report.related_reports) or "—"),
    ]
    if report.resolved_at:
        rows.append(("Resolved", _long_date(report.resolved_at)))

    return env.get_template("incident_report.html").render(report=report, rows=rows)
