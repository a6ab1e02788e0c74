import os
import time
import logging
from typing import Callable, Dict, Tuple

import psycopg2
import redis
import requests

from config import DATABASE_URL, REDIS_HOST, REDIS_PORT

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("HealthMonitor")


BACKEND_API_URL = os.getenv("BACKEND_API_URL", "http://backend-api:8000")
CHECK_INTERVAL_SECONDS = int(os.getenv("HEALTH_CHECK_INTERVAL", "60"))


def check_http_service(name: str, url: str, timeout: float = 5.0) -> Tuple[bool, str]:
    try:
        resp = requests.get(url, timeout=timeout)
        if resp.ok:
            return True, f"{name}: OK ({resp.status_code})"
        return False, f"{name}: FAIL ({resp.status_code})"
    except requests.RequestException as e:
        return False, f"{name}: ERROR ({e})"


def check_backend_api() -> Tuple[bool, str]:
    return check_http_service("backend-api /health", f"{BACKEND_API_URL}/health")


def check_cache_via_api() -> Tuple[bool, str]:
    return check_http_service("backend-api /cache/info", f"{BACKEND_API_URL}/cache/info")


def check_database() -> Tuple[bool, str]:
    try:
        conn = psycopg2.connect(DATABASE_URL, connect_timeout=5)
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            _ = cur.fetchone()
        conn.close()
        return True, "postgres: OK"
    except psycopg2.Error as e:
        return False, f"postgres: ERROR ({e})"


def check_redis() -> Tuple[bool, str]:
    try:
        r = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, decode_responses=True, socket_connect_timeout=5)
        r.ping()
        return True, "redis: OK"
    except redis.RedisError as e:
        return False, f"redis: ERROR ({e})"


DEFAULT_CHECKS: Dict[str, Callable[[], Tuple[bool, str]]] = {
    "backend_api": check_backend_api,
    "cache_via_api": check_cache_via_api,
    "database": check_database,
    "redis": check_redis,
}


def monitor_all_services(checks: Dict[str, Callable[[], Tuple[bool, str]]] = None) -> Dict[str, bool]:
    checks = checks or DEFAULT_CHECKS

    results: Dict[str, bool] = {}
    logger.info("=" * 60)
    logger.info("Health check results:")

    for name, func in checks.items():
        ok, message = func()
        results[name] = ok
        if ok:
            logger.info(f"[OK ] {message}")
        else:
            logger.warning(f"[FAIL] {message}")

    logger.info("=" * 60)
    return results


if __name__ == "__main__":
    logger.info("Health Monitor Service Started")
    logger.info("Waiting 15 seconds before first check to let services start...")
    time.sleep(15)

    while True:
        try:
            monitor_all_services()
        except Exception as e:
            logger.error(f"Error during monitoring: {e}")
        logger.info(f"Next check in {CHECK_INTERVAL_SECONDS} seconds...")
        time.sleep(CHECK_INTERVAL_SECONDS)
