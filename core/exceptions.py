from datetime import date


class BillingError(Exception):
    """Erreur métier de la chaîne snapshots -> charges -> factures."""


class RateUnavailable(BillingError):
    """Aucun taux stocké pour (devise, date): conversion impossible."""

    def __init__(self, currency: str, rate_date: date):
        self.currency = currency
        self.rate_date = rate_date
        super().__init__(f"no {currency} rate stored for {rate_date:%d.%m.%Y}")


class NoSnapshotsForPeriod(BillingError):
    """Aucun snapshot sur la période (traité comme 0 objet actif)."""


class NoModulesAssigned(BillingError):
    """Le compte n'a aucun module facturable."""


class FleetSourceError(BillingError):
    """Erreur renvoyée par la source de flotte (API Wialon)."""

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message if code is None else f"{message} (code {code})")


class InvalidInvoiceTransition(BillingError):
    """Transition de statut de facture non autorisée."""
