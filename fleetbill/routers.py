from rest_framework.routers import DefaultRouter

router = DefaultRouter()

# Admin comptes & modules
from accounts.views.accounts import AccountAdminViewSet, ModuleAdminViewSet
router.register(r"admin/accounts", AccountAdminViewSet, basename="admin-accounts")
router.register(r"admin/modules", ModuleAdminViewSet, basename="admin-modules")

# Admin snapshots
from usage.views import SnapshotAdminViewSet
router.register(r"admin/snapshots", SnapshotAdminViewSet, basename="admin-snapshots")

# Admin charges & factures
from billing.views import DailyChargeAdminViewSet, InvoiceAdminViewSet
router.register(r"admin/charges", DailyChargeAdminViewSet, basename="admin-charges")
router.register(r"admin/invoices", InvoiceAdminViewSet, basename="admin-invoices")

# Admin taux de change
from rates.views import ExchangeRateAdminViewSet
router.register(r"admin/rates", ExchangeRateAdminViewSet, basename="admin-rates")
