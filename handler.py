"""
AWS Lambda handler — Mangum wrapper for FastAPI.

Lambda has no /dev/shm, so set PRISM_POOL_KIND=thread there.
"""

from mangum import Mangum

from prism.main import app

handler = Mangum(app, lifespan="off")
