import unittest

from pennywise.errors import Conflict, NotFound, get_error_message


class ErrorMessageTests(unittest.TestCase):
    def test_service_errors_keep_code_and_message(self) -> None:
        error = Conflict("A tag with this name already exists.")

        self.assertEqual(error.code, "conflict")
        self.assertEqual(get_error_message(error), "A tag with this name already exists.")
        self.assertEqual(NotFound("Tag not found.").code, "not_found")

    def test_falls_back_to_default(self) -> None:
        self.assertEqual(get_error_message(ValueError(""), "Invalid input."), "Invalid input.")
        self.assertEqual(get_error_message(None), "Something went wrong")
        self.assertEqual(get_error_message("plain text"), "plain text")


if __name__ == "__main__":
    unittest.main()
