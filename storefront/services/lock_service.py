import uuid

import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, WEBHOOK_EVENT_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomowo
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#skrypt lua wykonuje sie jako jedna operacja, nikt nie wcisnie sie miedzy GET a DEL
#wiec zwolnimy tylko wlasny claim, nie cudzy


class LockService:
    """
    Claim zdarzen webhooka bramki platnosci.
    -pierwsze dostarczenie zdarzenia zaklada klucz (SET NX EX)
    -kolejne dostarczenia tego samego zdarzenia sa odrzucane bez dotykania bazy
    -przy bledzie claim jest zwalniany, zeby retry bramki mogl przejsc

    Autorytatywna bramka idempotencji i tak jest w bazie (payment_status),
    to tylko skrot dla duplikatow.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(event_id: str) -> str:
        return f"payment:webhook:{event_id}"

    @redis_retry()
    def claim_event(self, event_id: str, ttl: int = WEBHOOK_EVENT_TTL_SECONDS) -> str | None:
        """Zwraca token claimu albo None jesli zdarzenie jest juz obslugiwane."""
        token = uuid.uuid4().hex
        key = self._key(event_id)
        logger.info(f"Claim webhook event {key}")
        #SET payment:webhook:evt_1 "<token>" NX EX 86400
        ok = self.redis.set(name=key, value=token, nx=True, ex=ttl)
        return token if ok else None

    @redis_retry()
    def release_event(self, event_id: str, token: str) -> bool:
        key = self._key(event_id)
        logger.info(f"Release webhook event {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
