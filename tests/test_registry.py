import unittest

from uplink.registry import MASK_PLACEHOLDER, SessionRegistry, mask_address


class TestMaskAddress(unittest.TestCase):

    def test_ipv4_keeps_first_two_octets(self):
        self.assertEqual(mask_address(("192.168.1.42", 50123)), "192.168.x.x")

    def test_ipv6_keeps_first_hextet(self):
        self.assertEqual(mask_address("2001:db8::1"), "2001:xxxx:xxxx:xxxx")

    def test_ipv4_mapped_ipv6_is_masked_as_ipv4(self):
        self.assertEqual(mask_address(("::ffff:10.1.2.3", 1, 0, 0)), "10.1.x.x")

    def test_unparseable_addresses_use_placeholder(self):
        self.assertEqual(mask_address("not-an-ip"), MASK_PLACEHOLDER)
        self.assertEqual(mask_address(None), MASK_PLACEHOLDER)
        self.assertEqual(mask_address(()), MASK_PLACEHOLDER)


class TestSessionRegistry(unittest.TestCase):

    def setUp(self):
        self.registry = SessionRegistry()

    def test_register_stores_session_without_real_address(self):
        session = self.registry.register("abcd1234", "alice", ("203.0.113.7", 4000), 1000)
        self.assertEqual(session.alias, "alice")
        self.assertEqual(session.masked_address, "203.0.x.x")
        self.assertEqual(self.registry.lookup("abcd1234"), session)
        self.assertNotIn("203.0.113.7", str(session.to_dict()))

    def test_empty_alias_gets_fallback(self):
        self.assertEqual(self.registry.register("abcd1234", "", None, 0).alias, "User_abcd")
        self.assertEqual(self.registry.register("wxyz9999", "   ", None, 0).alias, "User_wxyz")

    def test_alias_collisions_allowed_first_match_wins(self):
        self.registry.register("first", "neo", None, 0)
        self.registry.register("second", "neo", None, 1)
        self.assertEqual(len(self.registry), 2)
        self.assertEqual(self.registry.lookup_by_alias("neo"), "first")
        self.assertIsNone(self.registry.lookup_by_alias("trinity"))

    def test_remove_is_idempotent(self):
        self.registry.register("a", "alice", None, 0)
        self.assertIsNotNone(self.registry.remove("a"))
        self.assertIsNone(self.registry.remove("a"))
        self.assertIsNone(self.registry.remove("unknown"))
        self.assertNotIn("a", self.registry)

    def test_list_all_in_join_order(self):
        self.registry.register("b", "bob", None, 0)
        self.registry.register("a", "alice", None, 1)
        self.assertEqual([s.alias for s in self.registry.list_all()], ["bob", "alice"])


if __name__ == "__main__":
    unittest.main()
