import unittest

import support  # noqa: F401

from tfinance.core.validators import (
    validate_account_name,
    validate_email,
    validate_login,
    validate_password,
)


class EmailValidatorTests(unittest.TestCase):
    def test_accepts_regular_addresses(self):
        self.assertIsNone(validate_email("alice@example.com"))
        self.assertIsNone(validate_email("Alice.Smith-1@mail.example.org"))

    def test_rejects_blank_and_malformed(self):
        self.assertEqual(validate_email("   "), "Email must not be empty")
        self.assertEqual(validate_email("alice@example"), "Invalid email format")
        self.assertEqual(validate_email(".alice@example.com"), "Invalid email format")

    def test_rejects_overlong_address(self):
        email = "a" * 250 + "@x.io"
        self.assertIn("too long", validate_email(email))


class LoginValidatorTests(unittest.TestCase):
    def test_length_bounds(self):
        self.assertIn("at least 3", validate_login("ab"))
        self.assertIsNone(validate_login("abc"))
        self.assertIsNone(validate_login("a" * 50))
        self.assertIn("at most 50", validate_login("a" * 51))

    def test_allowed_characters(self):
        self.assertIsNone(validate_login("alice_01-x"))
        self.assertIn("only letters", validate_login("alice.smith"))


class PasswordValidatorTests(unittest.TestCase):
    def test_accepts_strong_password(self):
        self.assertIsNone(validate_password("Str0ng!pass"))

    def test_accepts_cyrillic_letters(self):
        self.assertIsNone(validate_password("Пароль12!"))

    def test_reports_first_missing_class(self):
        self.assertIn("at least 8", validate_password("Ab1!"))
        self.assertIn("uppercase", validate_password("weak1234!"))
        self.assertIn("lowercase", validate_password("WEAK1234!"))
        self.assertIn("digit", validate_password("Weakpass!"))
        self.assertIn("special character", validate_password("Weakpass1"))

    def test_rejects_passwords_bcrypt_would_truncate(self):
        password = "Aa1!" + "я" * 40
        self.assertIn("72 bytes", validate_password(password))


class AccountNameValidatorTests(unittest.TestCase):
    def test_minimum_length_after_trim(self):
        self.assertIn("at least 7", validate_account_name("  Card  "))
        self.assertIsNone(validate_account_name("Savings account"))


if __name__ == "__main__":
    unittest.main()
