"""
Demo personal-data sources.

Stand-ins for the email, calendar, wearable and smart-home services a host
application would plug in. Everything here is static sample data.
"""

from jarvis_assistant.assistant.types import ServiceAccount, ServiceConnection

DEVICE_ACCOUNTS = ("personal@example.com", "work@example.com")

EMAILS = {
    "personal@example.com": [
        {"from": "Sarah <sarah@widgets.com>", "subject": "Re: 1:1 Canceled",
         "body": "Hi, I need to cancel our 1:1 today. Can we reschedule for tomorrow afternoon?"},
        {"from": "Dr. Smith's Office", "subject": "Your Appointment Reminder",
         "body": "This is a reminder for your dentist appointment tomorrow at 5:00 PM."},
    ],
    "work@example.com": [
        {"from": "Alex <alex@investors.com>", "subject": "Quick Question",
         "body": "Hey, can we confirm the investor meeting for tomorrow at 10 AM?"},
        {"from": "Slack #design-team", "subject": "Reminder: Design Review Feedback",
         "body": "Don't forget to submit your design review feedback by EOD."},
    ],
}

CALENDAR_EVENTS = [
    {"title": "Design Review", "time": "9:00 AM - 10:00 AM", "status": "Critical"},
    {"title": "1:1 with Sarah", "time": "2:00 PM - 2:30 PM", "status": "Normal"},
    {"title": "Dentist Appointment", "time": "5:00 PM", "status": "Personal"},
]

WELLBEING = {
    "sleep": {"hours": 6, "minutes": 15, "quality": "below average"},
    "hrv": "Low",
    "readiness_score": 65,
    "notes": "Suggests a lighter day due to potential stress or fatigue.",
}

SMART_HOME = {"office_light": "On", "thermostat": "70°F"}

# One-paragraph summaries used in the context graph for connected services
SERVICE_SUMMARIES = {
    "calendar": (
        "- Calendar:\n"
        "  - 9:00 AM - 10:00 AM: Design Review (Critical)\n"
        "  - 2:00 PM - 2:30 PM: 1:1 with Sarah\n"
        "  - 5:00 PM: Dentist Appointment\n"
    ),
    "wellbeing": (
        "- Wearable data:\n"
        "  - Sleep: 6 hours, 15 minutes (below average)\n"
        "  - Heart rate variability: low, indicating possible stress or fatigue\n"
        "  - Readiness score: 65/100 (suggests a lighter day)\n"
    ),
    "smarthome": (
        "- Smart home:\n"
        "  - Office light: on\n"
        "  - Thermostat: 70°F\n"
    ),
}


def get_emails(account_ids: list[str]) -> list[dict] | dict:
    if not account_ids:
        return {"error": "No email accounts were specified or connected."}
    emails = []
    for account_id in account_ids:
        for email in EMAILS.get(account_id, []):
            emails.append({**email, "account": account_id})
    return emails


def get_calendar_events() -> list[dict]:
    return [dict(e) for e in CALENDAR_EVENTS]


def get_wellbeing_data() -> dict:
    return dict(WELLBEING)


def get_smart_home_status() -> dict:
    return dict(SMART_HOME)


def demo_integrations() -> list[ServiceConnection]:
    """Initial integrations: calendar and wellbeing on, email accounts discovered but off."""
    return [
        ServiceConnection(
            id="email", name="Email", description="Summarize, search, and draft emails.",
            connected=False,
            accounts=tuple(ServiceAccount(id=a, connected=False) for a in DEVICE_ACCOUNTS),
        ),
        ServiceConnection(
            id="calendar", name="Calendar",
            description="Manage your schedule and get upcoming event briefings.", connected=True,
        ),
        ServiceConnection(
            id="wellbeing", name="Wellbeing",
            description="Integrate health data for proactive wellness suggestions.", connected=True,
        ),
        ServiceConnection(
            id="smarthome", name="Smart Home",
            description="Control and get status updates from your smart devices.", connected=False,
        ),
    ]
