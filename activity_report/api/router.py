from fastapi import APIRouter

from activity_report.api.routes import activities, auth, posts, system, users

api_router = APIRouter()
api_router.include_router(activities.router, prefix="/activities", tags=["activities"])
api_router.include_router(posts.router, prefix="/posts", tags=["posts"])
api_router.include_router(users.router, tags=["users"])

auth_router = APIRouter()
auth_router.include_router(auth.router, tags=["auth"])

system_router = APIRouter()
system_router.include_router(system.router, tags=["system"])
