from sweeper import run_sweeps


class TestRunSweeps:
    def test_every_sweep_reports(self):
        results = run_sweeps()
        assert set(results) == {"dispatch", "code_expiry", "earnings_release"}
        assert results["code_expiry"] == 0
        assert results["earnings_release"] == 0

    def test_named_sweep_runs_alone(self):
        assert run_sweeps(["code_expiry"]) == {"code_expiry": 0}

    def test_waiting_order_is_picked_up_by_the_sweep(self, online_courier, paid_order, load_order):
        from dispatch.courier.heartbeat import RecordHeartbeat
        from dispatch.utils.locks import courier_key, serialized_process

        online_courier("courier-1", online=False)
        order_id = paid_order()
        serialized_process(RecordHeartbeat(courier_id="courier-1", is_online=True), courier_key("courier-1"))

        results = run_sweeps()
        assert results["dispatch"]["assigned"] == 1
        assert load_order(order_id).assigned_courier_id == "courier-1"
