import logging
from typing import Iterable

from django.db import transaction

from accounts.models import Account, AccountModule, Module

logger = logging.getLogger(__name__)


def billing_enabled_accounts():
    """Comptes participant à la facturation, modules préchargés."""
    return (Account.objects
            .filter(is_billing_enabled=True)
            .prefetch_related("modules")
            .order_by("id"))


@transaction.atomic
def assign_module_bulk(module: Module, account_ids: Iterable[int]) -> int:
    """Rattache le module aux comptes donnés; ignore les rattachements existants."""
    account_ids = list(account_ids)
    existing = set(AccountModule.objects
                   .filter(module=module, account_id__in=account_ids)
                   .values_list("account_id", flat=True))
    links = [AccountModule(account_id=aid, module=module)
             for aid in Account.objects.filter(id__in=account_ids).values_list("id", flat=True)
             if aid not in existing]
    AccountModule.objects.bulk_create(links)
    logger.info("module %s assigned to %d accounts", module.id, len(links))
    return len(links)


@transaction.atomic
def unassign_module_bulk(module: Module, account_ids: Iterable[int]) -> int:
    deleted, _ = AccountModule.objects.filter(module=module, account_id__in=list(account_ids)).delete()
    logger.info("module %s unassigned from %d accounts", module.id, deleted)
    return deleted


def set_currency_bulk(account_ids: Iterable[int], currency: str) -> int:
    """
    Change la devise de facturation. Les factures déjà générées gardent leur
    devise (copiée dans Invoice.currency).
    """
    return Account.objects.filter(id__in=list(account_ids)).update(billing_currency=currency.upper())


def toggle_billing(account: Account) -> Account:
    account.is_billing_enabled = not account.is_billing_enabled
    account.save(update_fields=["is_billing_enabled", "updated_at"])
    return account
