"""
Tests for operation resolution, role evaluation and merging.
"""

import pytest

from fieldroles import (
    AuthorizationService,
    ConfigurationError,
    Evaluator,
    NotAuthorizedError,
    PermissionSet,
    Role,
    authorize,
    merge,
    operation,
)

from support import BasePolicy, Resource, User


class Basic(Resource):
    pass


class BasicPolicy(BasePolicy):
    model = Basic

    roles = [
        Role(
            "basic_role",
            attributes={"show": ["basic", "attributes"]},
            associations={"show": ["basic", "associations"]},
        ),
        Role(
            "enhanced_role",
            attributes={"show": ["enhanced", "attributes"], "create": ["enhanced", "attributes"]},
            associations={"show": ["enhanced", "associations"]},
        ),
        Role("unconditioned", attributes={"show": ["anything"]}),
    ]

    @operation
    def allow_no_one(self):
        return False

    @operation
    def allow_regular(self):
        return self.allow("basic_role")

    @operation
    def boolean_default(self):
        return self.user is not None

    @operation
    def allow_only_enhanced(self):
        return self.allow("enhanced_role")

    @operation
    def undeclared_role(self):
        return self.allow("no_such_role")

    @operation
    def missing_condition(self):
        return self.allow("unconditioned")

    @operation
    def merges_roles(self):
        return self.allow("basic_role", "enhanced_role")

    @operation
    def single_name(self):
        return "basic_role"

    @operation
    def malformed(self):
        return 42


def test_returns_permission_set_when_permitted(current_user):
    """Test a satisfied role produces a PermissionSet."""
    result = authorize(current_user, Basic("basic"), "allow_regular")

    assert isinstance(result, PermissionSet)
    assert result.policy is BasicPolicy


def test_false_operation_raises(current_user):
    """Test an operation returning False denies access."""
    with pytest.raises(NotAuthorizedError) as exc_info:
        authorize(current_user, Basic("basic"), "allow_no_one")

    assert exc_info.value.query == "allow_no_one"
    assert "not allowed to allow_no_one this Basic" in str(exc_info.value)


def test_unsatisfied_role_raises(current_user):
    """Test a subject holding none of the candidate roles is denied."""
    with pytest.raises(NotAuthorizedError):
        authorize(current_user, Basic("basic"), "allow_only_enhanced")


def test_enhanced_role_allowed_when_condition_holds(current_user):
    """Test the enhanced role is granted on the enhanced resource."""
    result = authorize(current_user, Basic("enhanced"), "allow_only_enhanced")

    assert result.roles.for_current_model == ["enhanced_role"]


def test_boolean_operation_passes_through(current_user):
    """Test a True operation bypasses roles entirely."""
    assert authorize(current_user, Basic("basic"), "boolean_default") is True


def test_undeclared_role_is_configuration_error(current_user):
    """Test naming a role the policy never declared."""
    with pytest.raises(ConfigurationError, match="no_such_role"):
        authorize(current_user, Basic("basic"), "undeclared_role")


def test_missing_condition_is_configuration_error(current_user):
    """Test a declared role without a predicate."""
    with pytest.raises(ConfigurationError, match="no condition for role 'unconditioned'"):
        authorize(current_user, Basic("basic"), "missing_condition")


def test_unknown_operation_is_configuration_error(current_user):
    """Test asking for an operation that is not registered."""
    with pytest.raises(ConfigurationError, match="no operation 'publish'"):
        authorize(current_user, Basic("basic"), "publish")


def test_malformed_operation_result_is_configuration_error(current_user):
    """Test an operation returning something other than bool or role names."""
    with pytest.raises(ConfigurationError):
        authorize(current_user, Basic("basic"), "malformed")


def test_single_role_permissions(current_user):
    """Test the exact output of a single satisfied role."""
    result = authorize(current_user, Basic("basic"), "allow_regular")

    assert result.to_dict() == {
        "attributes": {"show": ["basic", "attributes"]},
        "associations": {"show": ["basic", "associations"]},
        "roles": {
            "for_current_model": ["basic_role"],
            "for_associated_models": {},
        },
    }


def test_single_role_name_result(current_user):
    """Test an operation may return one role name as a string."""
    result = authorize(current_user, Basic("basic"), "single_name")

    assert result.roles.for_current_model == ["basic_role"]


def test_merges_satisfied_roles(current_user):
    """Test every satisfied role's grant is union-merged in candidate order."""
    result = authorize(current_user, Basic("enhanced"), "merges_roles")

    assert result.to_dict() == {
        "attributes": {
            "show": ["basic", "attributes", "enhanced"],
            "create": ["enhanced", "attributes"],
        },
        "associations": {"show": ["basic", "associations", "enhanced"]},
        "roles": {
            "for_current_model": ["basic_role", "enhanced_role"],
            "for_associated_models": {},
        },
    }


def test_merge_is_deterministic(current_user):
    """Test repeated resolutions produce identical lists."""
    first = authorize(current_user, Basic("enhanced"), "merges_roles")
    second = authorize(current_user, Basic("enhanced"), "merges_roles")

    assert first == second
    assert first.attributes["show"] == second.attributes["show"]


def test_merge_skips_unsatisfied_roles(current_user):
    """Test only satisfied roles contribute to the merge."""
    result = authorize(current_user, Basic("basic"), "merges_roles")

    assert result.roles.for_current_model == ["basic_role"]
    assert "create" not in result.attributes


def test_can_returns_bool():
    """Test can() never raises on denial."""
    auth = AuthorizationService(User())

    assert auth.can(Basic("enhanced"), "allow_only_enhanced") is True
    assert auth.can(Basic("basic"), "allow_only_enhanced") is False
    assert auth.can(Basic("basic"), "allow_no_one") is False


def test_evaluator_candidates():
    """Test predicate result validation."""
    assert Evaluator.candidates(True) is True
    assert Evaluator.candidates(False) is False
    assert Evaluator.candidates("reader") == ["reader"]
    assert Evaluator.candidates(["a", "b", "a"]) == ["a", "b"]

    with pytest.raises(ConfigurationError):
        Evaluator.candidates(["a", 1])
    with pytest.raises(ConfigurationError):
        Evaluator.candidates(None)


def test_evaluator_resolves_directly(current_user):
    """Test the evaluator can be driven without the service."""
    policy = BasicPolicy(current_user, Basic("enhanced"))
    evaluator = Evaluator(policy)

    result = evaluator.resolve(["enhanced_role"])
    assert result.attributes["create"] == ["enhanced", "attributes"]
    assert evaluator.resolve(False) is False
    assert evaluator.first_satisfied_role(["basic_role", "enhanced_role"]).name == "basic_role"


def test_merge_is_idempotent(current_user):
    """Test merging a role with itself yields its own grant."""
    entry = BasicPolicy.role_registry().lookup("enhanced_role")

    merged = merge([entry, entry])
    assert merged.attributes == {"show": ["enhanced", "attributes"], "create": ["enhanced", "attributes"]}
    assert merged.roles.for_current_model == ["enhanced_role"]
