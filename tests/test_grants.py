"""
Tests for grant expansion.
"""

import pytest

from fieldroles import (
    ConfigurationError,
    GrantBuilder,
    MappingSchemaProvider,
    ResourceSchema,
    Restrictions,
    Role,
    authorize,
    operation,
)

from support import BasePolicy, Resource, resource_id_is, schema


class Implicit(Resource):
    pass


class Linked(Resource):
    pass


schema.add(Implicit, ResourceSchema(fields=["attributes", "names", "id"], associations={"association": Linked}))


@pytest.fixture
def builder():
    provider = MappingSchemaProvider({
        Implicit: {"fields": ["attributes", "names", "id"], "associations": {"association": Linked}},
    })
    return GrantBuilder(Implicit, provider, Restrictions.defaults(), owner="ImplicitPolicy")


# ============ Wildcards ============


def test_show_all(builder):
    """Test show_all grants every field for show."""
    grant = builder.build_grant(Role("r", attributes="show_all", associations="show_all"))

    assert grant.attributes == {"show": ("attributes", "names", "id")}
    assert grant.associations == {"show": ("association",)}


def test_create_all_and_update_all(builder):
    """Test create_all/update_all also grant show, and drop restricted write fields."""
    grant = builder.build_grant(Role("r", attributes="create_all", associations="update_all"))

    assert grant.attributes == {"show": ("attributes", "names", "id"), "create": ("attributes", "names")}
    assert grant.associations == {"show": ("association",), "update": ("association",)}


def test_save_all(builder):
    """Test save_all grants show, create and update."""
    grant = builder.build_grant(Role("r", attributes="save_all", associations="save_all"))

    assert grant.attributes == {
        "show": ("attributes", "names", "id"),
        "create": ("attributes", "names"),
        "update": ("attributes", "names"),
    }
    assert grant.associations == {
        "show": ("association",),
        "create": ("association",),
        "update": ("association",),
    }


def test_unknown_wildcard(builder):
    """Test an unknown implicit declaration."""
    with pytest.raises(ConfigurationError, match="implicit declaration"):
        builder.build("everything", "attributes", "r")


# ============ Explicit declarations ============


def test_all_value(builder):
    """Test 'all' expands per action with restrictions."""
    grant = builder.build_grant(
        Role("r", attributes={"show": "all", "create": "all"}, associations={"create": "all"})
    )

    assert grant.attributes == {"show": ("attributes", "names", "id"), "create": ("attributes", "names")}
    assert grant.associations == {"create": ("association",)}


def test_save_key(builder):
    """Test save resolves to create and update, but not show."""
    grant = builder.build_grant(
        Role("r", attributes={"show": ["save_option"], "save": ["save_option"]}, associations={"save": ["save_option"]})
    )

    assert grant.attributes == {
        "show": ("save_option",),
        "create": ("save_option",),
        "update": ("save_option",),
    }
    assert grant.associations == {"create": ("save_option",), "update": ("save_option",)}


def test_save_unions_with_explicit_action(builder):
    """Test save merges into an explicitly declared action."""
    result = builder.build({"create": ["a"], "save": ["b", "a"]}, "attributes")

    assert result == {"create": ("a", "b"), "update": ("b", "a")}


def test_all_minus(builder):
    """Test all_minus removes the listed fields and nothing else."""
    result = builder.build({"update": ["all_minus", "names"]}, "attributes")

    assert result == {"update": ("attributes", "id")}


def test_literal_list_is_verbatim(builder):
    """Test restricted fields listed explicitly stay granted."""
    result = builder.build({"create": ["id", "names", "id"]}, "attributes")

    assert result == {"create": ("id", "names")}


def test_literal_list_needs_no_schema():
    """Test explicit lists work for policies without a model."""
    builder = GrantBuilder(None, None, Restrictions.defaults())

    assert builder.build({"show": ["title"]}, "attributes") == {"show": ("title",)}


def test_wildcard_without_schema():
    """Test wildcards need a model with a discoverable schema."""
    builder = GrantBuilder(None, None, Restrictions.defaults(), owner="LoosePolicy")

    with pytest.raises(ConfigurationError, match="LoosePolicy does not declare a model"):
        builder.build("show_all", "attributes")


def test_invalid_action_key(builder):
    """Test action keys are validated."""
    with pytest.raises(ConfigurationError, match="keys for role 'r'"):
        builder.build({"destroy": ["a"]}, "attributes", "r")


def test_invalid_value(builder):
    """Test values must be 'all', all_minus or a list."""
    with pytest.raises(ConfigurationError):
        builder.build({"show": 5}, "attributes")
    with pytest.raises(ConfigurationError):
        builder.build({"show": "some"}, "attributes")
    with pytest.raises(ConfigurationError):
        builder.build({"show": ["a", 3]}, "attributes")


def test_none_is_empty(builder):
    """Test an undeclared grant type expands to nothing."""
    assert builder.build(None, "attributes") == {}


def test_restrictions_apply_to_wildcards(builder):
    """Test custom restrictions are subtracted from wildcard expansion."""
    builder.restrictions = Restrictions.defaults().override(show_attributes=["names"])

    assert builder.build("show_all", "attributes") == {"show": ("attributes", "id")}


def test_full_list_fetched_once():
    """Test the schema provider is asked once per grant type."""

    class CountingProvider(MappingSchemaProvider):
        calls = 0

        def full_field_list(self, resource_type):
            CountingProvider.calls += 1
            return super().full_field_list(resource_type)

    provider = CountingProvider({Implicit: {"fields": ["a", "b"]}})
    builder = GrantBuilder(Implicit, provider, Restrictions())
    builder.build("save_all", "attributes")
    builder.build({"show": "all"}, "attributes")

    assert CountingProvider.calls == 1


# ============ Role declarations ============


def test_role_validation():
    """Test malformed role declarations are rejected."""
    with pytest.raises(ConfigurationError):
        Role("")
    with pytest.raises(ConfigurationError):
        Role("r", attributes=["a", "b"])
    with pytest.raises(ConfigurationError):
        Role("r", scope="not callable")
    with pytest.raises(ConfigurationError):
        Role("r", condition=True)


# ============ Through a policy ============


class ImplicitPolicy(BasePolicy):
    model = Implicit

    roles = [
        Role("show_all_role", attributes="show_all", associations="show_all",
             condition=resource_id_is("show_all_role")),
        Role("create_update_all_role", attributes="create_all", associations="update_all",
             condition=resource_id_is("create_update_all_role")),
        Role("all_role", attributes={"show": "all", "create": "all"}, associations={"create": "all"},
             condition=resource_id_is("all_role")),
    ]

    @operation
    def implicit_declaration(self):
        return self.allow("show_all_role", "create_update_all_role", "all_role")


def test_policy_expands_wildcards(current_user):
    """Test wildcard roles resolve through a policy's schema provider."""
    result = authorize(current_user, Implicit("create_update_all_role"), "implicit_declaration")

    assert result.attributes == {"show": ["attributes", "names", "id"], "create": ["attributes", "names"]}
    assert result.associations == {"show": ["association"], "update": ["association"]}


def test_policy_expands_all(current_user):
    """Test 'all' values resolve through a policy's schema provider."""
    result = authorize(current_user, Implicit("all_role"), "implicit_declaration")

    assert result.attributes == {"show": ["attributes", "names", "id"], "create": ["attributes", "names"]}
    assert result.associations == {"create": ["association"]}
