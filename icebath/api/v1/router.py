from fastapi import APIRouter

# Public: availability
from icebath.api.v1.public.time_slots import router as time_slots_router

# Public: bookings
from icebath.api.v1.public.bookings import router as bookings_router

# Public: gift cards & customer entitlements
from icebath.api.v1.public.gift_cards import router as gift_cards_router
from icebath.api.v1.public.me import router as me_router

# Payment provider callbacks
from icebath.api.v1.public.webhooks import router as webhooks_router

# Admin
from icebath.api.v1.admin.bookings import router as admin_bookings_router
from icebath.api.v1.admin.time_slots import router as admin_time_slots_router

api_router = APIRouter()

# --- Public: availability ---
api_router.include_router(time_slots_router)

# --- Public: bookings ---
api_router.include_router(bookings_router)

# --- Public: gift cards & profile ---
api_router.include_router(gift_cards_router)
api_router.include_router(me_router)

# --- Webhooks ---
api_router.include_router(webhooks_router)

# --- Admin ---
api_router.include_router(admin_bookings_router)
api_router.include_router(admin_time_slots_router)
