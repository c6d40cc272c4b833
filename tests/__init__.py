import os

# In-memory storage and user-id tokens; must be set before telehealth.config loads
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["AUTH_MODE"] = "dev"
os.environ["REDIS_URL"] = ""
os.environ["DOCTOR_DIRECTORY_URL"] = ""
