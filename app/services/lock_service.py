import redis
from app.utils.retry import redis_retry
from app.utils.settings import REDIS_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje skrypt lua atomowo, nie mozna wcisnac sie miedzy GET a DEL
#wiec lock zwalnia tylko ten, kto go zalozyl (token)


class LockService:
    """
    -blokada capture na czas jednego wywolania operatora platnosci (per intent)
    -zwalnianie locka tylko przez wlasciciela
    -TTL, zeby lock po padnietym procesie nie wisial w nieskonczonosc
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(intent_id: str) -> str:
        return f"payment:{intent_id}:capture-lock"

    @redis_retry()
    def acquire_capture_lock(self, intent_id: str, owner: str, ttl: int) -> bool:
        key = self._key(intent_id)
        logger.info(f"Acquire lock {key} for {owner}")
        #SET payment:X:capture-lock "owner" NX EX 60
        return bool(
            self.redis.set(
                name=key,
                value=owner,
                nx=True, #tylko jesli nie istnieje
                ex=ttl, #wygasa sam, nie trzeba recznie czyscic
            )
        )

    @redis_retry()
    def release_capture_lock(self, intent_id: str, owner: str) -> bool:
        key = self._key(intent_id)
        logger.info(f"Release lock {key} for {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)
