# app/utils/retry.py
import requests
import redis
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type


class TransientGatewayError(Exception):
    """5xx or expired token from the payment gateway, worth another attempt."""


def gateway_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(
            (requests.ConnectionError, requests.Timeout, TransientGatewayError)
        ),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )
