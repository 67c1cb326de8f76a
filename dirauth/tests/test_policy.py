import unittest

from dirauth.exceptions import (
    ConfigurationError,
    FailureReason,
    Forbidden,
    ForbiddenKind,
    UserInRefuseGroup,
    UserNotInAllowedGroup,
)
from dirauth.models import Allowed, GroupRecord, PolicyConfig, Rejected
from dirauth.policy import (
    AccessPolicyEngine,
    assert_access,
    derive_roles,
    evaluate,
    flatten_memberships,
)
from dirauth.tests.fakes import ADMINS, CONTRACTORS, IT, SALES, STAFF


def memberships(*records):
    return {record.dn: record for record in records}


SALES_GROUP = GroupRecord(SALES, "Sales", "sales")
IT_GROUP = GroupRecord(IT, "IT", "it")
STAFF_GROUP = GroupRecord(STAFF, "Staff")
CONTRACTORS_GROUP = GroupRecord(CONTRACTORS, "Contractors")
ADMINS_GROUP = GroupRecord(ADMINS, "Admins", "admins")


class PolicyConfigTests(unittest.TestCase):

    def test_memberships_required_when_group_options_present(self):
        self.assertFalse(PolicyConfig().requires_memberships)
        self.assertTrue(PolicyConfig(allow_groups=[SALES]).requires_memberships)
        self.assertTrue(PolicyConfig(refuse_groups=[]).requires_memberships)
        self.assertTrue(PolicyConfig(role_map={}).requires_memberships)
        self.assertTrue(PolicyConfig(derive_mail_roles=True).requires_memberships)

    def test_explicit_load_groups_wins(self):
        self.assertFalse(PolicyConfig(admin_groups=[IT], load_groups=False).requires_memberships)
        self.assertTrue(PolicyConfig(load_groups=True).requires_memberships)

    def test_lists_stored_as_frozensets(self):
        config = PolicyConfig(allow_groups=[SALES, SALES], admin_groups=IT)
        self.assertEqual(config.allow_groups, frozenset([SALES]))
        self.assertEqual(config.admin_groups, frozenset([IT]))


class FlattenTests(unittest.TestCase):

    def test_dn_then_name_in_traversal_order(self):
        flattened = flatten_memberships(memberships(SALES_GROUP, IT_GROUP))
        self.assertEqual(flattened, [SALES, "Sales", IT, "IT"])

    def test_absent_memberships_flatten_to_nothing(self):
        self.assertEqual(flatten_memberships(None), [])


class AssertAccessTests(unittest.TestCase):

    def test_refuse_group_rejects_even_when_allowed(self):
        """Blacklist is evaluated before whitelist."""
        config = PolicyConfig(refuse_groups=[CONTRACTORS], allow_groups=[CONTRACTORS, SALES])
        user_data = {'username': 'jsmith', 'memberOf': memberships(SALES_GROUP, CONTRACTORS_GROUP)}

        with self.assertRaises(UserInRefuseGroup) as ctx:
            assert_access(user_data, config)

        self.assertEqual(ctx.exception.group, CONTRACTORS)
        self.assertIs(ctx.exception.kind, ForbiddenKind.BLACKLIST)
        self.assertIs(ctx.exception.reason, FailureReason.FORBIDDEN_BLACKLIST)
        self.assertIn(CONTRACTORS, str(ctx.exception))

    def test_first_refused_group_in_traversal_order(self):
        config = PolicyConfig(refuse_groups=[CONTRACTORS, "Staff"])
        user_data = {'username': 'jsmith', 'memberOf': memberships(STAFF_GROUP, CONTRACTORS_GROUP)}

        with self.assertRaises(UserInRefuseGroup) as ctx:
            assert_access(user_data, config)

        self.assertEqual(ctx.exception.group, "Staff")

    def test_not_in_allowed_group(self):
        config = PolicyConfig(allow_groups=[IT])
        user_data = {'username': 'jsmith', 'memberOf': memberships(SALES_GROUP)}

        with self.assertRaises(UserNotInAllowedGroup) as ctx:
            assert_access(user_data, config)

        self.assertIs(ctx.exception.kind, ForbiddenKind.WHITELIST)
        self.assertIs(ctx.exception.reason, FailureReason.FORBIDDEN_WHITELIST)

    def test_allow_list_matches_short_name(self):
        config = PolicyConfig(allow_groups=["Sales"])
        assert_access({'username': 'jsmith', 'memberOf': memberships(SALES_GROUP)}, config)

    def test_empty_allow_list_rejects_everybody(self):
        config = PolicyConfig(allow_groups=[])
        with self.assertRaises(UserNotInAllowedGroup):
            assert_access({'username': 'jsmith', 'memberOf': memberships(SALES_GROUP)}, config)

    def test_no_allow_list_and_no_groups_passes(self):
        config = PolicyConfig(refuse_groups=[CONTRACTORS])
        assert_access({'username': 'jsmith', 'memberOf': {}}, config)

    def test_memberships_required_but_absent_is_configuration_error(self):
        config = PolicyConfig(load_groups=True)

        with self.assertRaises(ConfigurationError) as ctx:
            assert_access({'username': 'jsmith'}, config)

        self.assertNotIsInstance(ctx.exception, Forbidden)
        self.assertIs(ctx.exception.reason, FailureReason.CONFIGURATION_ERROR)

    def test_absent_memberships_without_policy_pass(self):
        assert_access({'username': 'jsmith'}, PolicyConfig())


class DeriveRolesTests(unittest.TestCase):

    def test_admin_added_once(self):
        config = PolicyConfig(admin_groups=[IT], role_map={"IT": "admin"})
        user_data = {'memberOf': memberships(SALES_GROUP, IT_GROUP)}

        roles = derive_roles(user_data, config)

        self.assertEqual(roles.count("admin"), 1)

    def test_admin_by_dn(self):
        config = PolicyConfig(admin_groups=[IT])
        self.assertEqual(derive_roles({'memberOf': memberships(IT_GROUP)}, config), ["admin"])

    def test_mail_roles(self):
        config = PolicyConfig(derive_mail_roles=True)
        user_data = {'memberOf': memberships(SALES_GROUP, STAFF_GROUP, IT_GROUP)}
        self.assertEqual(derive_roles(user_data, config), ["sales", "it"])

    def test_role_map_checks_dn_name_and_mail(self):
        config = PolicyConfig(role_map={SALES: "by-dn", "Sales": "by-name", "sales": "by-mail"})
        user_data = {'memberOf': memberships(SALES_GROUP)}
        self.assertEqual(derive_roles(user_data, config), ["by-dn", "by-name", "by-mail"])

    def test_order_is_mail_then_mapped_then_admin(self):
        config = PolicyConfig(
            derive_mail_roles=True,
            role_map={"Staff": "staff", "Sales": "sales"},
            admin_groups=["Admins"],
        )
        user_data = {'memberOf': memberships(ADMINS_GROUP, SALES_GROUP, STAFF_GROUP)}

        self.assertEqual(derive_roles(user_data, config), ["admins", "sales", "staff", "admin"])

    def test_stable_across_runs(self):
        config = PolicyConfig(derive_mail_roles=True, role_map={"IT": "ops", "Sales": "ops"}, admin_groups=[IT])
        user_data = {'memberOf': memberships(IT_GROUP, SALES_GROUP)}

        first = derive_roles(user_data, config)
        second = derive_roles(user_data, config)

        self.assertEqual(first, second)
        self.assertEqual(first, ["it", "sales", "ops", "admin"])

    def test_no_memberships_no_roles(self):
        config = PolicyConfig(derive_mail_roles=True, role_map={"IT": "ops"}, admin_groups=[IT])
        self.assertEqual(derive_roles({}, config), [])
        self.assertEqual(derive_roles({'memberOf': {}}, config), [])


class EvaluateTests(unittest.TestCase):

    def test_allowed_carries_roles(self):
        engine = AccessPolicyEngine(PolicyConfig(allow_groups=["Sales"], derive_mail_roles=True))
        decision = engine.evaluate({'username': 'jsmith', 'memberOf': memberships(SALES_GROUP)})
        self.assertEqual(decision, Allowed(roles=["sales"]))

    def test_rejected_carries_reason_and_group(self):
        decision = evaluate(
            {'username': 'jsmith', 'memberOf': memberships(CONTRACTORS_GROUP)},
            PolicyConfig(refuse_groups=[CONTRACTORS]),
        )

        self.assertIsInstance(decision, Rejected)
        self.assertIs(decision.reason, FailureReason.FORBIDDEN_BLACKLIST)
        self.assertIs(decision.kind, ForbiddenKind.BLACKLIST)
        self.assertEqual(decision.group, CONTRACTORS)

    def test_configuration_error_is_rejected_without_kind(self):
        decision = evaluate({'username': 'jsmith'}, PolicyConfig(load_groups=True))
        self.assertIs(decision.reason, FailureReason.CONFIGURATION_ERROR)
        self.assertIsNone(decision.kind)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
