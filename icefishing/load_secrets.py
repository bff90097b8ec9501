import os
from dotenv import load_dotenv

load_dotenv()

redis_url = os.getenv("REDIS_URL", "redis://redis:6379/0")
wheel_seed = os.getenv("WHEEL_SEED", "dev-seed")

active_ms = int(os.getenv("ACTIVE_MS", "8600"))
cooldown_ms = int(os.getenv("COOLDOWN_MS", "15000"))
history_max = int(os.getenv("HISTORY_MAX", "18"))
max_round_drift = int(os.getenv("MAX_ROUND_DRIFT", str(60 * 60)))
settle_batch = int(os.getenv("SETTLE_BATCH", "10"))
last_completed_policy = os.getenv("LAST_COMPLETED_POLICY", "active_end")

treasury_address = os.getenv("TREASURY_ADDRESS")
tonapi_base_url = os.getenv("TONAPI_BASE_URL", "https://tonapi.io/v2")
tonapi_key = os.getenv("TONAPI_KEY")
tonapi_timeout_seconds = float(os.getenv("TONAPI_TIMEOUT_SECONDS", "10"))
transfer_query_limit = int(os.getenv("TRANSFER_QUERY_LIMIT", "20"))

deposit_intent_ttl_seconds = int(os.getenv("DEPOSIT_INTENT_TTL_SECONDS", str(60 * 30)))
deposit_min_observation_ms = int(os.getenv("DEPOSIT_MIN_OBSERVATION_MS", "15000"))
deposit_time_tolerance_ms = int(os.getenv("DEPOSIT_TIME_TOLERANCE_MS", "60000"))
deposit_resume_batch = int(os.getenv("DEPOSIT_RESUME_BATCH", "6"))

if __name__ == "__main__":
    print(redis_url, active_ms, cooldown_ms, history_max, treasury_address)
