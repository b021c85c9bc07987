"""
Tests for secret encryption helpers
"""
from django.test import SimpleTestCase, override_settings

from apps.common.encryption import (
    DecryptionError,
    decrypt_value,
    encrypt_value,
    mask_secret,
)


class EncryptionTest(SimpleTestCase):

    def test_ciphertext_hides_plaintext(self):
        ciphertext = encrypt_value('sk-live-abcdef123456')

        self.assertNotIn('abcdef123456', ciphertext)
        self.assertEqual(decrypt_value(ciphertext), 'sk-live-abcdef123456')

    def test_same_plaintext_encrypts_differently(self):
        self.assertNotEqual(encrypt_value('sk-same'), encrypt_value('sk-same'))

    def test_wrong_key_cannot_decrypt(self):
        ciphertext = encrypt_value('sk-secret')

        with override_settings(ENCRYPTION_KEY='another-key'):
            with self.assertRaises(DecryptionError):
                decrypt_value(ciphertext)

    def test_garbage_ciphertext(self):
        with self.assertRaises(DecryptionError):
            decrypt_value('not-a-token')

    def test_mask_secret(self):
        self.assertEqual(mask_secret('sk-abcdefgh1234'), 'sk-...1234')
        self.assertEqual(mask_secret('abcd'), '****')
        self.assertEqual(mask_secret('abcdef'), '...cdef')
