from fastapi import Depends

from app.db.mongo import get_db
from app.repositories.billing_repo import BillingRepository, BillingStore
from app.repositories.roster_repo import RosterRepository, RosterSource
from app.services.billing_service import BillingService
from app.services.enrollment_service import EnrollmentBilling
from app.services.reconciler import BillingReconciler


def get_billing_store(db = Depends(get_db)) -> BillingStore:
    return BillingRepository(db)


def get_roster(db = Depends(get_db)) -> RosterSource:
    return RosterRepository(db)


def get_reconciler(
    store: BillingStore = Depends(get_billing_store),
    roster: RosterSource = Depends(get_roster),
) -> BillingReconciler:
    return BillingReconciler(store, roster)


def get_billing_service(
    store: BillingStore = Depends(get_billing_store),
    roster: RosterSource = Depends(get_roster),
    reconciler: BillingReconciler = Depends(get_reconciler),
) -> BillingService:
    return BillingService(store, roster, reconciler)


def get_enrollment_billing(
    store: BillingStore = Depends(get_billing_store),
    roster: RosterSource = Depends(get_roster),
) -> EnrollmentBilling:
    return EnrollmentBilling(store, roster)
