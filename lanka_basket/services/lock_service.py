import redis
from redis.exceptions import RedisError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from lanka_basket.utils.settings import REDIS_URL
from lanka_basket.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje skrypt lua atomowo, nikt nie wcisnie sie miedzy GET a DEL
#lock zwalnia tylko wlasciciel (ten sam event), obcy lock zostaje

def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(RedisError),
    )

class LockService:
    """
    -lock na sesje platnosci podczas obslugi webhooka
    -zwalnianie locka
    -atomowosc przy pomocy lua
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(session_id: str) -> str:
        return f"checkout-session:{session_id}:lock"

    @redis_retry()
    def acquire_session_lock(self, session_id: str, owner: str, ttl: int) -> bool:
        key = self._key(session_id)
        logger.info(f"Acquire lock {key} for event {owner}")
        #SET checkout-session:cs_1:lock "evt_1" NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=owner,
                nx=True,
                ex=ttl, #wygasa sam jesli proces padnie w trakcie
            )
        )

    @redis_retry()
    def release_session_lock(self, session_id: str, owner: str) -> bool:
        key = self._key(session_id)
        logger.info(f"Release lock {key} for event {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)
