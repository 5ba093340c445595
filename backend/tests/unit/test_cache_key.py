"""Unit tests for permission cache keys

Cache keys must depend on every input of a decision and on nothing else.
"""

from uuid import uuid4

from authz.cache import make_cache_key
from authz.professions import Profession
from authz.schemas import AccessContext


class TestMakeCacheKey:

    def test_key_is_sha256_hex(self):
        key = make_cache_key(uuid4(), "dossier", "read", AccessContext(active_role=Profession.AVOCAT))
        assert len(key) == 64
        int(key, 16)

    def test_additional_context_order_does_not_matter(self):
        user_id, org_id = uuid4(), uuid4()
        first = AccessContext(
            active_role=Profession.AVOCAT,
            organization_id=org_id,
            additional_context={"department": "contentieux", "region": "paris"},
        )
        second = AccessContext(
            organization_id=org_id,
            additional_context={"region": "paris", "department": "contentieux"},
            active_role="avocat",
        )
        assert make_cache_key(user_id, "dossier", "read", first) == make_cache_key(user_id, "dossier", "read", second)

    def test_every_decision_input_changes_the_key(self):
        user_id, org_id = uuid4(), uuid4()
        base = AccessContext(active_role=Profession.AVOCAT, organization_id=org_id, resource_id="D-1")
        key = make_cache_key(user_id, "dossier", "read", base)

        assert make_cache_key(uuid4(), "dossier", "read", base) != key
        assert make_cache_key(user_id, "client", "read", base) != key
        assert make_cache_key(user_id, "dossier", "update", base) != key
        assert make_cache_key(user_id, "dossier", "read", base.model_copy(update={"active_role": Profession.NOTAIRE})) != key
        assert make_cache_key(user_id, "dossier", "read", base.model_copy(update={"organization_id": uuid4()})) != key
        assert make_cache_key(user_id, "dossier", "read", base.model_copy(update={"resource_id": "D-2"})) != key
        assert make_cache_key(
            user_id, "dossier", "read", base.model_copy(update={"additional_context": {"department": "fiscal"}})
        ) != key

    def test_empty_values_are_normalized(self):
        user_id = uuid4()
        assert make_cache_key(user_id, "dossier", "read", AccessContext(resource_id="")) == \
            make_cache_key(user_id, "dossier", "read", AccessContext())
