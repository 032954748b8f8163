from fastapi import APIRouter

from . import ai, patient, public, super_admin

router = APIRouter(prefix="/api")
router.include_router(ai.router)
router.include_router(patient.router)
router.include_router(public.router)
router.include_router(super_admin.router)
