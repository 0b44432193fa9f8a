import base64
import unittest
from unittest.mock import MagicMock, patch

from memestream.errors import (
    CaptionGenerationError,
    InvalidCredentialError,
    QuotaExceededError,
)
from memestream.gemini import (
    CAPTION_MAX_OUTPUT_TOKENS,
    CAPTION_TEMPERATURE,
    CODING_CAPTION,
    EMPTY_RESPONSE_CAPTION,
    FOOD_CAPTION,
    MOCK_CAPTIONS,
    PETS_CAPTION,
    GeminiCaptioner,
    build_prompt,
    mock_caption,
)

RAW = b"\xff\xd8\xff fake jpeg"
IMAGE = "data:image/jpeg;base64," + base64.b64encode(RAW).decode()


class MockCaptionTests(unittest.TestCase):
    def test_themed_captions(self):
        self.assertEqual(mock_caption(["coding"]), CODING_CAPTION)
        self.assertEqual(mock_caption(["programming", "food"]), CODING_CAPTION)
        self.assertEqual(mock_caption(["food"]), FOOD_CAPTION)
        self.assertEqual(mock_caption(["cats", "food"]), FOOD_CAPTION)
        self.assertEqual(mock_caption(["dogs"]), PETS_CAPTION)

    def test_generic_pool(self):
        self.assertEqual(len(MOCK_CAPTIONS), 7)
        for _ in range(20):
            self.assertIn(mock_caption([]), MOCK_CAPTIONS)
        # Matching is exact and case-sensitive.
        self.assertIn(mock_caption(["Coding", "foods"]), MOCK_CAPTIONS)


class PromptTests(unittest.TestCase):
    def test_prompt_mentions_tags(self):
        self.assertNotIn("themes", build_prompt([]))
        self.assertTrue(build_prompt(["cats", "monday"]).endswith(
            "Consider these themes: cats, monday."
        ))


@patch("memestream.gemini.genai.Client")
class GeminiCaptionerTests(unittest.TestCase):
    def test_generate_sends_image_and_config(self, mock_client_cls):
        client = mock_client_cls.return_value
        client.models.generate_content.return_value = MagicMock(text=" Me at 3 AM \n")

        captioner = GeminiCaptioner(api_key="key", model="gemini-test")
        self.assertEqual(captioner.generate(IMAGE, ["cats"]), "Me at 3 AM")

        mock_client_cls.assert_called_once_with(api_key="key")
        kwargs = client.models.generate_content.call_args.kwargs
        self.assertEqual(kwargs["model"], "gemini-test")
        prompt, image_part = kwargs["contents"]
        self.assertIn("cats", prompt)
        self.assertEqual(image_part.inline_data.data, RAW)
        self.assertEqual(image_part.inline_data.mime_type, "image/jpeg")
        self.assertEqual(kwargs["config"].temperature, CAPTION_TEMPERATURE)
        self.assertEqual(kwargs["config"].max_output_tokens, CAPTION_MAX_OUTPUT_TOKENS)

    def test_empty_response(self, mock_client_cls):
        mock_client_cls.return_value.models.generate_content.return_value = MagicMock(
            text=None
        )
        captioner = GeminiCaptioner(api_key="key")
        self.assertEqual(captioner.generate(IMAGE), EMPTY_RESPONSE_CAPTION)

    def test_missing_key(self, mock_client_cls):
        captioner = GeminiCaptioner(api_key=None)
        with self.assertRaises(InvalidCredentialError):
            captioner.generate(IMAGE)
        mock_client_cls.assert_not_called()

    def test_error_classification(self, mock_client_cls):
        generate = mock_client_cls.return_value.models.generate_content
        captioner = GeminiCaptioner(api_key="key")
        cases = [
            ("400 API key not valid", InvalidCredentialError),
            ("429 quota exhausted", QuotaExceededError),
            ("500 internal", CaptionGenerationError),
        ]
        for message, expected in cases:
            generate.side_effect = RuntimeError(message)
            with self.assertRaises(expected) as ctx:
                captioner.generate(IMAGE)
            self.assertEqual(ctx.exception.detail, message)

        generate.side_effect = RuntimeError("500 internal")
        with self.assertRaises(CaptionGenerationError) as ctx:
            captioner.generate(IMAGE)
        self.assertNotIsInstance(ctx.exception, (InvalidCredentialError, QuotaExceededError))


if __name__ == "__main__":
    unittest.main()
