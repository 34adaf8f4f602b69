"""
プロバイダレジストリのユニットテスト
"""

import unittest

from deploylink.errors import UnknownProviderException
from deploylink.models import ProviderIdentity
from deploylink.providers.registry import ProviderDescriptor, ProviderRegistry, describe_source


class TestProviderRegistry(unittest.TestCase):

    def setUp(self):
        self.registry = ProviderRegistry()

    def test_every_identity_resolves(self):
        for identity in ProviderIdentity:
            descriptor = self.registry.resolve(identity)
            self.assertEqual(descriptor.identity, identity)

    def test_oauth_capability(self):
        self.assertTrue(self.registry.uses_oauth(ProviderIdentity.GITHUB))
        self.assertTrue(self.registry.uses_oauth(ProviderIdentity.DROPBOX))
        self.assertFalse(self.registry.uses_oauth(ProviderIdentity.LOCAL_GIT))
        self.assertFalse(self.registry.uses_oauth(ProviderIdentity.EXTERNAL_GIT))
        self.assertFalse(self.registry.uses_oauth(ProviderIdentity.NONE))

    def test_oauth_providers_have_authorization_url(self):
        providers = self.registry.oauth_providers()
        self.assertIn(ProviderIdentity.ONEDRIVE, providers)
        self.assertNotIn(ProviderIdentity.LOCAL_GIT, providers)
        for identity in providers:
            descriptor = self.registry.resolve(identity)
            self.assertTrue(descriptor.authorization_url.startswith("https://"))
            self.assertTrue(descriptor.token_route)
            self.assertTrue(descriptor.account_name_path)

    def test_unknown_identity_raises(self):
        with self.assertRaises(UnknownProviderException):
            self.registry.resolve("GitHub")  # type: ignore[arg-type]

    def test_restricted_table(self):
        registry = ProviderRegistry(
            descriptors=[
                ProviderDescriptor(
                    identity=ProviderIdentity.GITHUB,
                    authorization_url="https://example.test/authorize",
                    uses_oauth=True,
                    display_label_key="k",
                    display_name="GitHub",
                )
            ]
        )
        with self.assertRaises(UnknownProviderException):
            registry.resolve(ProviderIdentity.DROPBOX)

    def test_authorize_url_override(self):
        registry = ProviderRegistry(authorize_url_overrides={"Dropbox": "https://proxy.test/dropbox"})
        self.assertEqual(
            registry.resolve(ProviderIdentity.DROPBOX).authorization_url,
            "https://proxy.test/dropbox",
        )
        self.assertEqual(registry.resolve(ProviderIdentity.DROPBOX).token_route, "dropbox")

    def test_override_ignored_for_non_oauth(self):
        registry = ProviderRegistry(authorize_url_overrides={"LocalGit": "https://proxy.test/local"})
        self.assertEqual(registry.resolve(ProviderIdentity.LOCAL_GIT).authorization_url, "")


class TestDescribeSource(unittest.TestCase):

    def setUp(self):
        self.registry = ProviderRegistry()

    def test_bitbucket_variants_collapse(self):
        git = describe_source(self.registry, "BitbucketGit")
        hg = describe_source(self.registry, "BitbucketHg")
        self.assertEqual(git, hg)
        self.assertEqual(git, "deploymentCenterCodeSettingsSourceBitbucket")

    def test_local_git(self):
        self.assertEqual(
            describe_source(self.registry, "LocalGit"),
            "deploymentCenterCodeSettingsSourceLocalGit",
        )

    def test_none(self):
        self.assertEqual(describe_source(self.registry, None), "")

    def test_unknown(self):
        with self.assertRaises(UnknownProviderException):
            describe_source(self.registry, "Tfs")


if __name__ == "__main__":
    unittest.main()
