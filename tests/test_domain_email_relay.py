"""
Tests for the email relay pipeline.
"""

import json
import pytest
from unittest.mock import Mock, patch, MagicMock
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.email_relay import EmailRelay


def _notification(**mail_overrides):
    mail = {
        "timestamp": "2024-11-05T10:30:00.000Z",
        "source": "bounce@example.com",
        "destination": ["inbox@yourdomain.com"],
        "commonHeaders": {
            "from": ["Taro Yamada <sender@example.com>"],
            "to": ["inbox@yourdomain.com"],
            "subject": "Test Email Subject"
        }
    }
    mail.update(mail_overrides)
    return {
        "notificationType": "Received",
        "mail": mail,
        "receipt": {
            "recipients": ["inbox@yourdomain.com"],
            "action": {"type": "S3", "bucketName": "test-bucket", "objectKey": "test-key"}
        }
    }


def _record(notification, message_id="msg-1"):
    return {"messageId": message_id, "body": json.dumps(notification)}


def _s3_object(raw_email):
    body = MagicMock()
    body.iter_chunks.side_effect = lambda chunk_size: iter([raw_email])
    return {'Body': body}


class TestParseSesNotification:
    """Test metadata extraction from SES notifications."""

    def test_envelope_fields(self):
        """Test sender and recipients come from the envelope."""
        metadata = EmailRelay()._parse_ses_notification(_record(_notification()))

        assert metadata.message_id == "msg-1"
        assert metadata.from_address == "bounce@example.com"
        assert metadata.sender_name == "Taro Yamada"
        assert metadata.to_addresses == ["inbox@yourdomain.com"]
        assert metadata.subject == "Test Email Subject"
        assert metadata.bucket_name == "test-bucket"
        assert metadata.object_key == "test-key"

    def test_sender_falls_back_to_from_header(self):
        """Test From header address is used without an envelope sender."""
        notification = _notification()
        del notification["mail"]["source"]

        metadata = EmailRelay()._parse_ses_notification(_record(notification))

        assert metadata.from_address == "sender@example.com"

    def test_sender_unknown(self):
        """Test the sender default when nothing identifies it."""
        notification = _notification(commonHeaders={"subject": "x"})
        del notification["mail"]["source"]

        metadata = EmailRelay()._parse_ses_notification(_record(notification))

        assert metadata.from_address == "Unknown"

    def test_string_from_header(self):
        """Test a From header given as a plain string."""
        notification = _notification(commonHeaders={"from": "Hanako <hanako@example.com>"})
        del notification["mail"]["source"]

        metadata = EmailRelay()._parse_ses_notification(_record(notification))

        assert metadata.from_address == "hanako@example.com"
        assert metadata.sender_name == "Hanako"
        assert metadata.subject == ""

    def test_recipients_fall_back_to_to_header(self):
        """Test To header is used without envelope recipients."""
        notification = _notification()
        del notification["mail"]["destination"]
        notification["receipt"]["recipients"] = []

        metadata = EmailRelay()._parse_ses_notification(_record(notification))

        assert metadata.to_addresses == ["inbox@yourdomain.com"]

    def test_sns_wrapped_notification(self):
        """Test SES -> SNS -> SQS delivery is unwrapped."""
        record = {
            "messageId": "msg-sns",
            "body": json.dumps({"Type": "Notification", "Message": json.dumps(_notification())})
        }

        metadata = EmailRelay()._parse_ses_notification(record)

        assert metadata.subject == "Test Email Subject"

    def test_missing_fields(self):
        """Test notifications without mail/receipt are rejected."""
        with pytest.raises(ValueError, match="missing 'mail' or 'receipt'"):
            EmailRelay()._parse_ses_notification(_record({"mail": {}}))

    def test_missing_s3_location(self):
        """Test notifications without an S3 action are rejected."""
        notification = _notification()
        notification["receipt"]["action"] = {"type": "Lambda"}

        with pytest.raises(ValueError, match="Missing S3 location"):
            EmailRelay()._parse_ses_notification(_record(notification))


@patch('services.forwarding.ses_client')
@patch('integrations.discord_webhook.requests.post')
@patch('services.s3.s3_client')
class TestProcessSesRecord:
    """Test the end-to-end relay of one record."""

    def test_text_message(self, mock_s3_client, mock_post, mock_ses_client, raw_multipart_email):
        """Test the plain text payload with the library parser."""
        mock_s3_client.get_object.return_value = _s3_object(raw_multipart_email)
        mock_post.return_value = Mock(ok=True, status_code=204)

        result = EmailRelay(body_parser='library', message_format='text').process_ses_record(
            _record(_notification())
        )

        assert result.success is True
        assert result.webhook_delivered is True
        assert result.forwarded is False
        assert mock_post.call_args[1]['json'] == {
            "content": (
                "送信元:bounce@example.com\n"
                "宛先:inbox@yourdomain.com\n"
                "件名:Test Email Subject\n"
                "\n"
                "テスト本文"
            )
        }

    def test_legacy_parser(self, mock_s3_client, mock_post, mock_ses_client, raw_multipart_email):
        """Test the legacy parser produces the same body."""
        mock_s3_client.get_object.return_value = _s3_object(raw_multipart_email)
        mock_post.return_value = Mock(ok=True, status_code=204)

        EmailRelay(body_parser='legacy', message_format='text').process_ses_record(_record(_notification()))

        assert mock_post.call_args[1]['json']['content'].endswith("\n\nテスト本文")

    def test_embed_message(self, mock_s3_client, mock_post, mock_ses_client, raw_multipart_email):
        """Test the embed payload."""
        mock_s3_client.get_object.return_value = _s3_object(raw_multipart_email)
        mock_post.return_value = Mock(ok=True, status_code=204)

        EmailRelay(body_parser='library', message_format='embed').process_ses_record(_record(_notification()))

        payload = mock_post.call_args[1]['json']
        assert payload['username'] == "Taro Yamada"
        assert payload['embeds'][0]['title'] == "Test Email Subject"
        assert payload['embeds'][0]['description'].strip() == "テスト本文"

    def test_subject_from_raw_headers(self, mock_s3_client, mock_post, mock_ses_client):
        """Test the subject is read from the message when the notification has none."""
        raw_email = (
            b"From: sender@example.com\r\n"
            b"Subject: =?UTF-8?B?5Lu25ZCN44OG44K544OI?=\r\n"
            b"Content-Type: text/plain; charset=utf-8\r\n"
            b"\r\n"
            b"Body\r\n"
        )
        mock_s3_client.get_object.return_value = _s3_object(raw_email)
        mock_post.return_value = Mock(ok=True, status_code=204)
        notification = _notification(commonHeaders={"from": ["sender@example.com"]})

        result = EmailRelay(message_format='text').process_ses_record(_record(notification))

        assert result.metadata.subject == "件名テスト"
        assert "件名:件名テスト\n" in mock_post.call_args[1]['json']['content']

    def test_empty_email_uses_defaults(self, mock_s3_client, mock_post, mock_ses_client):
        """Test an email without subject and body still produces a full message."""
        raw_email = b"From: sender@example.com\r\nContent-Type: text/plain\r\n\r\n\r\n"
        mock_s3_client.get_object.return_value = _s3_object(raw_email)
        mock_post.return_value = Mock(ok=True, status_code=204)
        notification = _notification(commonHeaders={"from": ["sender@example.com"]})

        EmailRelay(message_format='text').process_ses_record(_record(notification))

        content = mock_post.call_args[1]['json']['content']
        assert "件名:件名なし\n" in content
        assert content.endswith("\n\n本文なし")

    @patch('services.forwarding.FORWARD_FROM_ADDRESS', '')
    @patch('services.forwarding.FORWARD_EMAIL_ADDRESS', 'me@example.org')
    def test_forwards_when_configured(self, mock_s3_client, mock_post, mock_ses_client, raw_multipart_email):
        """Test the raw email is forwarded after the webhook post."""
        mock_s3_client.get_object.return_value = _s3_object(raw_multipart_email)
        mock_post.return_value = Mock(ok=True, status_code=204)
        mock_ses_client.send_raw_email.return_value = {'MessageId': 'ses-1'}

        result = EmailRelay().process_ses_record(_record(_notification()))

        assert result.forwarded is True
        assert mock_ses_client.send_raw_email.call_args[1]['Destinations'] == ['me@example.org']

    @patch('services.forwarding.FORWARD_FROM_ADDRESS', '')
    @patch('services.forwarding.FORWARD_EMAIL_ADDRESS', 'me@example.org')
    def test_forward_failure_keeps_webhook_result(self, mock_s3_client, mock_post, mock_ses_client,
                                                  raw_multipart_email):
        """Test a forwarding error does not change the webhook outcome."""
        mock_s3_client.get_object.return_value = _s3_object(raw_multipart_email)
        mock_post.return_value = Mock(ok=True, status_code=204)
        mock_ses_client.send_raw_email.side_effect = RuntimeError("network down")

        result = EmailRelay().process_ses_record(_record(_notification()))

        assert result.success is True
        assert result.webhook_delivered is True
        assert result.forwarded is False

    @patch('services.forwarding.FORWARD_FROM_ADDRESS', '')
    @patch('services.forwarding.FORWARD_EMAIL_ADDRESS', 'me@example.org')
    def test_webhook_failure_still_forwards(self, mock_s3_client, mock_post, mock_ses_client,
                                            raw_multipart_email):
        """Test forwarding happens even if the webhook rejects the message."""
        mock_s3_client.get_object.return_value = _s3_object(raw_multipart_email)
        mock_post.return_value = Mock(ok=False, status_code=500, reason='Server Error', text='oops')
        mock_ses_client.send_raw_email.return_value = {'MessageId': 'ses-1'}

        result = EmailRelay().process_ses_record(_record(_notification()))

        assert result.webhook_delivered is False
        assert result.forwarded is True

    def test_invalid_record(self, mock_s3_client, mock_post, mock_ses_client):
        """Test errors are returned, not raised."""
        result = EmailRelay().process_ses_record({"messageId": "bad", "body": "not json"})

        assert result.success is False
        assert result.message_id == "bad"
        assert result.error_message
        mock_post.assert_not_called()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
