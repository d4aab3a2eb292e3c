from datetime import datetime, timedelta, timezone

import jwt
import pytest

from api.dependencies import decode_actor, get_group_admin, get_training_center_id
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from domain.common.exceptions import ForbiddenException
from domain.common.party import Actor, PartyRef, PartyType


def make_token(**claims) -> str:
    payload = {"sub": "601", "party_type": "training_center", "party_id": 1, "type": "access",
               "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def test_decode_training_center_actor():
    actor = decode_actor(make_token(name="Riverside"))
    assert actor.user_id == 601
    assert actor.party == PartyRef.training_center(1)
    assert actor.name == "Riverside"


def test_decode_group_admin_without_party_id():
    actor = decode_actor(make_token(sub="1", party_type="group", party_id=None))
    assert actor.is_group_admin
    assert actor.party.party_type == PartyType.GROUP


@pytest.mark.parametrize(
    "claims",
    [
        {"type": "refresh"},
        {"party_type": "planet"},
        {"party_id": None},
        {"sub": "not-a-number"},
    ],
)
def test_decode_rejects_bad_claims(claims):
    with pytest.raises(UnauthorizedException):
        decode_actor(make_token(**claims))


def test_decode_rejects_expired_and_forged_tokens():
    with pytest.raises(TokenExpiredException):
        decode_actor(make_token(exp=datetime.now(timezone.utc) - timedelta(minutes=1)))
    forged = jwt.encode({"sub": "1", "party_type": "group"}, "another-secret", algorithm="HS256")
    with pytest.raises(UnauthorizedException):
        decode_actor(forged)


@pytest.mark.asyncio
async def test_role_guards():
    tc = Actor(user_id=601, party=PartyRef.training_center(4))
    admin = Actor(user_id=1, party=PartyRef.group())
    acc = Actor(user_id=501, party=PartyRef.acc(1))

    assert await get_training_center_id(tc, None) == 4
    assert await get_training_center_id(admin, 9) == 9
    with pytest.raises(ForbiddenException):
        await get_training_center_id(admin, None)
    with pytest.raises(ForbiddenException):
        await get_training_center_id(acc, 1)

    assert await get_group_admin(admin) is admin
    with pytest.raises(ForbiddenException):
        await get_group_admin(acc)
