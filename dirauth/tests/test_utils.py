import struct
import unittest

from dirauth.handlers.base import build_user_lookup
from dirauth.handlers.groups import build_group_parent_lookup
from dirauth.utils import (
    convert_sid_to_string,
    escape_dn_filter_value,
    extract_name,
    mail_local_part,
    normalize_username,
    unescape_dn_value,
)


class ExtractNameTests(unittest.TestCase):

    def test_first_cn_component(self):
        self.assertEqual(extract_name("CN=Admins,OU=Groups,DC=corp,DC=local"), "Admins")

    def test_no_cn_component(self):
        self.assertEqual(extract_name("OU=NoCN,DC=x"), "")
        self.assertEqual(extract_name(""), "")

    def test_cn_not_first(self):
        self.assertEqual(extract_name("OU=Groups,cn=ops,dc=idm"), "ops")

    def test_escaped_comma_is_unescaped(self):
        self.assertEqual(extract_name(r"CN=Doe\, John,OU=Users,DC=corp"), "Doe, John")

    def test_hex_escapes_are_decoded(self):
        self.assertEqual(extract_name(r"CN=Sales\2c EMEA,OU=Groups,DC=corp"), "Sales, EMEA")
        self.assertEqual(extract_name(r"CN=M\C3\BCller,OU=Users,DC=corp"), "Müller")

    def test_escaped_backslash_before_separator(self):
        self.assertEqual(extract_name("CN=a\\\\,OU=Groups,DC=corp"), "a\\")

    def test_unescape_plain_value(self):
        self.assertEqual(unescape_dn_value("Sales"), "Sales")
        self.assertEqual(unescape_dn_value(r"\#1 \+ \"x\""), '#1 + "x"')


class EscapingTests(unittest.TestCase):

    def test_plain_dn(self):
        self.assertEqual(
            escape_dn_filter_value("CN=Sales,OU=Groups"),
            r"CN\3dSales\2cOU\3dGroups",
        )

    def test_filter_metacharacters_cannot_break_out(self):
        escaped = escape_dn_filter_value("CN=x)(objectClass=*")
        self.assertNotIn("(", escaped)
        self.assertNotIn(")", escaped)
        self.assertNotIn("*", escaped)
        self.assertEqual(escaped, r"CN\3dx\29\28objectClass\3d\2a")

    def test_backslash_escaped_once(self):
        self.assertEqual(escape_dn_filter_value("CN=a\\b"), r"CN\3da\5cb")

    def test_leading_and_trailing_space(self):
        self.assertEqual(escape_dn_filter_value(" CN=x "), r"\20CN\3dx\20")

    def test_dn_special_characters(self):
        self.assertEqual(escape_dn_filter_value('+<>;"#'), r"\2b\3c\3e\3b\22\23")

    def test_group_parent_lookup(self):
        self.assertEqual(
            build_group_parent_lookup("CN=IT,DC=corp"),
            r"(&(objectClass=group)(member=CN\3dIT\2cDC\3dcorp))",
        )

    def test_user_lookup_escapes_values(self):
        self.assertEqual(
            build_user_lookup("j*smith"),
            r"(|(userprincipalname=j\2asmith)(sAMAccountName=j\2asmith))",
        )
        self.assertEqual(
            build_user_lookup("jsmith", "jsmith@corp.local"),
            "(|(userprincipalname=jsmith@corp.local)(sAMAccountName=jsmith))",
        )


class UsernameTests(unittest.TestCase):

    def test_mail_in_configured_domain(self):
        self.assertEqual(normalize_username(" JSmith@Corp.Local ", "corp.local"), "jsmith")

    def test_nt_style(self):
        self.assertEqual(normalize_username("CORP\\jsmith", "corp.local"), "jsmith")

    def test_foreign_domain_kept(self):
        self.assertEqual(normalize_username("jsmith@other.org", "corp.local"), "jsmith@other.org")

    def test_no_domain_configured(self):
        self.assertEqual(normalize_username("JSmith"), "jsmith")


class MailLocalPartTests(unittest.TestCase):

    def test_local_part(self):
        self.assertEqual(mail_local_part("sales@corp.local"), "sales")
        self.assertEqual(mail_local_part("sales"), "sales")
        self.assertIsNone(mail_local_part(None))
        self.assertIsNone(mail_local_part(""))


class SidTests(unittest.TestCase):

    def test_domain_sid(self):
        sid = struct.pack('<BB', 1, 5) + (5).to_bytes(6, 'big') + struct.pack('<5I', 21, 1, 2, 3, 500)
        self.assertEqual(convert_sid_to_string(sid), "S-1-5-21-1-2-3-500")

    def test_well_known_sid(self):
        sid = struct.pack('<BB', 1, 1) + (1).to_bytes(6, 'big') + struct.pack('<I', 0)
        self.assertEqual(convert_sid_to_string(sid), "S-1-1-0")

    def test_too_short(self):
        self.assertIsNone(convert_sid_to_string(b"\x01\x01"))
        self.assertIsNone(convert_sid_to_string(b""))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
