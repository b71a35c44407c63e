from fastapi import APIRouter

from admissions.modules.enrollments.admin_router import router as admin_enrollments_router
from admissions.modules.enrollments.router import router as enrollment_invites_router
from admissions.modules.installments.admin_router import router as admin_installments_router
from admissions.modules.notifications.admin_router import router as admin_notifications_router
from admissions.modules.renewals.router import router as admin_renewals_router

api_router = APIRouter()

api_router.include_router(
    enrollment_invites_router, prefix="/enrollment-invites", tags=["Enrollment Invites"]
)

api_router.include_router(
    admin_enrollments_router,
    prefix="/admin/enrollments",
    tags=["Admin - Enrollments"],
)

api_router.include_router(
    admin_installments_router,
    prefix="/admin/installments",
    tags=["Admin - Installments"],
)

api_router.include_router(
    admin_renewals_router,
    prefix="/admin/renewals",
    tags=["Admin - Renewals"],
)

api_router.include_router(
    admin_notifications_router,
    prefix="/admin/notifications",
    tags=["Admin - Notifications"],
)
