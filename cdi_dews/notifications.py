"""Mock e-mail alerts for escalated drought phases."""


class AlertNotifier:
    """Records (and prints) one alert per escalation.

    ``sender`` is an optional callable that receives the event dict; plug a
    real mail integration in there.
    """

    def __init__(self, sender=None):
        self.sender = sender
        self.sent = []

    def notify(self, user, region, woreda, phase, cdi):
        event = {
            "user": user.email if user is not None else None,
            "region": region,
            "woreda": woreda,
            "phase": phase,
            "cdi": cdi,
        }
        print(f"[MOCK] Sending email alert: {event}")
        self.sent.append(event)
        if self.sender is not None:
            self.sender(event)
        return event
