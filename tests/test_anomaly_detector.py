"""Tests for anomaly detector."""


class TestAnomalyDetector:
    """Test cases for AnomalyDetector class."""

    def test_detect_amount_anomaly(self, make_txn):
        """Should detect unusually large amounts in a category."""
        from bizxpense.intelligence.anomaly_detector import AnomalyDetector

        txns = [
            make_txn(f"n{i}", "STAPLES", amount, category_id="4")
            for i, amount in enumerate([50.0, 45.0, 55.0, 48.0])
        ]
        txns.append(make_txn("big", "STAPLES", 500.0, category_id="4"))

        anomalies = AnomalyDetector().detect(txns)

        assert any(a["id"] == "big" for a in anomalies)
        assert not any(a["id"].startswith("n") for a in anomalies)

    def test_detect_new_merchant_high_amount(self, make_txn):
        """Should flag one-off merchants with high amounts."""
        from bizxpense.intelligence.anomaly_detector import AnomalyDetector

        txns = [make_txn(f"k{i}", "KNOWN_STORE", 30.0) for i in range(5)]
        txns.append(make_txn("new", "NEW_VENDOR", 500.0))

        anomalies = AnomalyDetector().detect(txns)

        flagged = next(a for a in anomalies if a["id"] == "new")
        assert "New merchant" in flagged["reason"]

    def test_merchant_field_preferred(self, make_txn):
        """The merchant name, when set, identifies the vendor."""
        from bizxpense.intelligence.anomaly_detector import AnomalyDetector

        txns = [make_txn(f"k{i}", f"AMZN MKTP {i}", 30.0, merchant="Amazon") for i in range(5)]
        txns.append(make_txn("big", "AMZN MKTP X", 500.0, merchant="Amazon"))

        assert AnomalyDetector().detect(txns) == []

    def test_no_anomalies_in_normal_data(self, make_txn):
        from bizxpense.intelligence.anomaly_detector import AnomalyDetector

        txns = [make_txn(f"t{i}", "RENT CO", 1000.0, category_id="2") for i in range(4)]

        assert AnomalyDetector().detect(txns) == []

    def test_empty(self):
        from bizxpense.intelligence.anomaly_detector import AnomalyDetector

        assert AnomalyDetector().detect([]) == []
