# 参考文档: doc/server_structure.md
# 令牌签发与密码哈希测试

import time

import jwt
import pytest

from utils.security import JWTManager, MalformedHashError, PasswordHasher


class TestJWTManager:

    def test_issue_embeds_claims(self):
        manager = JWTManager("secret", access_token_expire_seconds=600)

        issued = manager.issue("account-1", 1)
        claims = jwt.decode(issued.token, "secret", algorithms=["HS256"])

        assert claims["id"] == "account-1"
        assert claims["role"] == 1
        assert claims["exp"] - claims["iat"] == 600
        assert claims["exp"] == issued.expires_at

    def test_verify_token(self):
        manager = JWTManager("secret")

        payload = manager.verify_token(manager.issue("account-1", 0).token)

        assert payload["id"] == "account-1"

    def test_token_signed_with_other_secret_is_rejected(self):
        token = JWTManager("other-secret").issue("account-1", 0).token

        assert JWTManager("secret").verify_token(token) is None

    def test_garbage_token_is_rejected(self):
        assert JWTManager("secret").verify_token("invalid_token_12345") is None

    def test_token_expires(self):
        manager = JWTManager("secret", access_token_expire_seconds=1)
        token = manager.issue("account-1", 0).token

        time.sleep(2)

        assert manager.verify_token(token) is None

    def test_empty_secret_is_refused(self):
        with pytest.raises(ValueError):
            JWTManager("")


class TestPasswordHasher:

    def test_hash_and_verify(self):
        hasher = PasswordHasher(rounds=4)
        hashed = hasher.hash("correct horse")

        assert hashed != "correct horse"
        assert hashed.startswith("$2b$04$")
        assert hasher.verify("correct horse", hashed) is True
        assert hasher.verify("wrong horse", hashed) is False

    def test_hash_is_salted(self):
        hasher = PasswordHasher(rounds=4)

        assert hasher.hash("same") != hasher.hash("same")

    def test_default_cost_factor(self):
        assert PasswordHasher().hash("pw").startswith("$2b$10$")

    @pytest.mark.parametrize("stored", [None, "", "not-a-bcrypt-hash"])
    def test_missing_or_malformed_hash(self, stored):
        with pytest.raises(MalformedHashError):
            PasswordHasher(rounds=4).verify("pw", stored)
