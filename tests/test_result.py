from proposal_bot.services.result import Result


class TestResultSuccess:
    def test_success_creates_ok_result(self):
        result = Result.success("https://app.exemplo.com/proposta/abc")
        assert result.ok is True
        assert result.value == "https://app.exemplo.com/proposta/abc"
        assert result.error is None
        assert bool(result) is True

    def test_success_with_none_value(self):
        result = Result.success(None)
        assert result.ok is True
        assert result.value is None


class TestResultFailure:
    def test_failure_creates_not_ok_result(self):
        result = Result.failure("Resend recusou o envio", "email_error")
        assert result.ok is False
        assert result.error == "Resend recusou o envio"
        assert result.error_code == "email_error"
        assert result.value is None
        assert bool(result) is False

    def test_failure_default_code(self):
        result = Result.failure("Error message")
        assert result.error_code == "unknown"
