import asyncio

import pytest
from argon2 import PasswordHasher

from app.auth.password import verify_password
from app.auth.principal import SqlAlchemyPrincipalLookup
from app.core.database import create_engine_for, create_session_maker, init_db
from app.core.exceptions import (
    AccountExists,
    AccountNotFound,
    InvalidCredentials,
    PrincipalDisabled,
    PrincipalNotFound,
    WeakCredential,
)
from app.models.user import RoleName
from app.services.accounts import AccountService, snapshot

PASSWORD = "Secret123!"


def run_accounts(tmp_path, body):
    """Run body(accounts, session_factory) against a scratch database."""

    async def _run():
        engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}")
        await init_db(engine)
        factory = create_session_maker(engine)
        try:
            async with factory() as session:
                return await body(AccountService(session), factory)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


async def _register(accounts, email="ada@example.com", **kwargs):
    return await accounts.register("Ada", "Lovelace", email, PASSWORD, **kwargs)


def test_login_flow(tmp_path):
    async def body(accounts, _):
        user = await _register(accounts)
        assert user.password_hash != PASSWORD
        assert verify_password(PASSWORD, user.password_hash)

        principal = await accounts.authenticate("ada@example.com", PASSWORD)
        assert principal.user_id == user.id
        assert principal.subject == "ada@example.com"
        assert principal.full_name == "Ada Lovelace"
        assert principal.role == "USER"
        assert user.last_login is not None

        with pytest.raises(InvalidCredentials):
            await accounts.authenticate("ada@example.com", "wrong")

    run_accounts(tmp_path, body)


def test_login_failures_are_indistinguishable(tmp_path):
    async def body(accounts, _):
        user = await _register(accounts)

        with pytest.raises(InvalidCredentials) as unknown:
            await accounts.authenticate("nobody@example.com", PASSWORD)
        with pytest.raises(InvalidCredentials) as wrong:
            await accounts.authenticate("ada@example.com", "Wrong123!")

        await accounts.set_status(user, False)
        with pytest.raises(InvalidCredentials) as disabled:
            await accounts.authenticate("ada@example.com", PASSWORD)

        assert unknown.value.message == wrong.value.message == disabled.value.message

    run_accounts(tmp_path, body)


def test_email_is_case_insensitive(tmp_path):
    async def body(accounts, _):
        await _register(accounts, email="Ada@Example.com")
        principal = await accounts.authenticate("ADA@example.COM", PASSWORD)
        assert principal.subject == "ada@example.com"

        with pytest.raises(AccountExists):
            await _register(accounts, email="ada@EXAMPLE.com")

    run_accounts(tmp_path, body)


def test_register_rejects_weak_password(tmp_path):
    async def body(accounts, _):
        with pytest.raises(WeakCredential) as exc:
            await accounts.register("Ada", "Lovelace", "ada@example.com", "Lovelace1!")
        assert exc.value.issues == ["Password must not contain your last name"]
        assert await accounts.count_users() == 0

    run_accounts(tmp_path, body)


def test_register_assigns_roles(tmp_path):
    async def body(accounts, _):
        admin = await _register(accounts, email="admin@example.com", role=RoleName.ADMIN)
        user = await _register(accounts, email="user@example.com")
        assert admin.role_name == "ADMIN"
        assert user.role_name == "USER"
        # Role rows are shared
        assert (await accounts.get_role(RoleName.USER)).id == user.role_id

    run_accounts(tmp_path, body)


def test_change_password(tmp_path):
    async def body(accounts, _):
        user = await _register(accounts)

        with pytest.raises(InvalidCredentials):
            await accounts.change_password(user, "Wrong123!", "N3w!Password")
        with pytest.raises(WeakCredential):
            await accounts.change_password(user, PASSWORD, "weak")

        await accounts.change_password(user, PASSWORD, "N3w!Password")
        await accounts.authenticate("ada@example.com", "N3w!Password")
        with pytest.raises(InvalidCredentials):
            await accounts.authenticate("ada@example.com", PASSWORD)

    run_accounts(tmp_path, body)


def test_login_upgrades_outdated_hash(tmp_path):
    async def body(accounts, _):
        user = await _register(accounts)
        user.password_hash = PasswordHasher(time_cost=1, memory_cost=8192, parallelism=1).hash(PASSWORD)
        await accounts.db.commit()

        await accounts.authenticate("ada@example.com", PASSWORD)
        assert "m=8192" not in user.password_hash
        assert verify_password(PASSWORD, user.password_hash)

    run_accounts(tmp_path, body)


def test_get_by_id_and_profile(tmp_path):
    async def body(accounts, _):
        user = await _register(accounts)
        await accounts.update_profile(user, first_name="Augusta")
        assert (await accounts.get_by_id(user.id)).full_name == "Augusta Lovelace"

        with pytest.raises(AccountNotFound):
            await accounts.get_by_id(9999)

    run_accounts(tmp_path, body)


def test_snapshot_has_no_hash(tmp_path):
    async def body(accounts, _):
        return snapshot(await _register(accounts))

    data = run_accounts(tmp_path, body)
    assert data["email"] == "ada@example.com"
    assert data["role"] == "USER"
    assert "password_hash" not in data
    assert PASSWORD not in str(data)


def test_principal_lookup(tmp_path):
    async def body(accounts, factory):
        user = await _register(accounts)
        lookup = SqlAlchemyPrincipalLookup(factory)

        principal = await lookup.find_by_subject("ada@example.com")
        assert principal.user_id == user.id
        assert principal.role == "USER"

        with pytest.raises(PrincipalNotFound):
            await lookup.find_by_subject("ghost@example.com")

        await accounts.set_status(user, False)
        with pytest.raises(PrincipalDisabled):
            await lookup.find_by_subject("ada@example.com")

    run_accounts(tmp_path, body)
