import unittest

import table_formula as m


def table_of(*lines):
    return m.parse_table(list(lines), 0)


class TableFormulaTests(unittest.TestCase):

    # ---------- durations ----------

    def test_parse_duration(self):
        self.assertEqual(m.parse_duration("1:30:00"), 5400)
        self.assertEqual(m.parse_duration("1:30"), 5400)
        self.assertEqual(m.parse_duration("-0:30:00"), -1800)
        self.assertIsNone(m.parse_duration("1:2"))
        self.assertIsNone(m.parse_duration("abc"))

    def test_format_durations(self):
        self.assertEqual(m.format_duration_hms(5400), "1:30:00")
        self.assertEqual(m.format_duration_hm(7200), "2:00")
        self.assertEqual(m.format_duration_decimal_hours(7200), "2.00")

    def test_negative_duration_keeps_sign(self):
        seconds = m.parse_duration("-1:15:30")
        self.assertEqual(seconds, -4530)
        self.assertEqual(m.format_duration_hms(seconds), "-1:15:30")
        self.assertEqual(m.format_duration_hm(-5400), "-1:30")

    # ---------- parsing ----------

    def test_parse_table_header_and_rules(self):
        lines = [
            "| name | qty |",
            "|------+-----|",
            "| a    | 1   |",
            "| b    | 2   |",
            "#+TBLFM: $2=$1",
        ]
        table = m.parse_table(lines, 2)
        self.assertEqual(table.start_line, 0)
        self.assertEqual(table.end_line, 3)
        self.assertEqual(table.tblfm_line, 4)
        self.assertEqual(table.row_count, 3)
        self.assertEqual(table.first_data_row, 2)
        self.assertEqual(table.data_row_count, 2)
        self.assertEqual(table.column_names, {"name": 1, "qty": 2})
        self.assertEqual(table.cell(3, 1), "b")
        self.assertEqual(table.cell(9, 1), "")

    def test_parse_table_from_tblfm_line_and_name(self):
        lines = ["#+NAME: prices", "| 1 |", "#+TBLFM: $1=2"]
        table = m.parse_table(lines, 2)
        self.assertEqual(table.name, "prices")
        self.assertEqual(len(table.formulas), 1)

    def test_parse_table_outside_table(self):
        self.assertIsNone(m.parse_table(["text"], 0))
        self.assertIsNone(m.parse_table(["| a |"], 5))

    def test_parse_formulas_drops_malformed(self):
        formulas = m.parse_formulas("$3=$1+$2::garbage::@>$3=vsum(@2$3..@-1$3);%.1f")
        self.assertEqual(len(formulas), 2)
        self.assertEqual(formulas[0].target, m.FormulaTarget(kind="column", column=3))
        self.assertEqual(formulas[1].target.kind, "field")
        self.assertEqual(formulas[1].target.row, ">")
        self.assertEqual(formulas[1].format, "%.1f")

    def test_parse_range_target(self):
        target = m.parse_formula_target("@2$1..@3$2")
        self.assertEqual(target.kind, "range")
        self.assertEqual((target.row, target.column, target.end_row, target.end_column), (2, 1, 3, 2))

    # ---------- references ----------

    def test_field_and_column_references(self):
        table = table_of("| 10 | 20 |", "| 30 | 40 |")
        anywhere = m.EvalContext(table=table, current_row=1, current_col=1)
        self.assertEqual(m.evaluate_expression("@1$1+@2$2", anywhere), 50)
        self.assertEqual(m.evaluate_expression("$1", m.EvalContext(table=table, current_row=2)), 30)
        here = m.EvalContext(table=table, current_row=2, current_col=2)
        self.assertEqual(m.evaluate_expression("@0$0", here), 40)
        self.assertEqual(m.evaluate_expression("@0$1+@0$2", here), 70)
        self.assertEqual(m.evaluate_expression("@1$0", here), 20)
        self.assertEqual(m.evaluate_expression("$1+$2", anywhere), 30)

    def test_power_operator(self):
        table = table_of("| 2 | 3 |")
        context = m.EvalContext(table=table, current_row=1)
        self.assertEqual(m.evaluate_expression("$1^$2", context), 8)
        self.assertEqual(m.evaluate_expression("$1**$2", context), 8)

    def test_relative_references(self):
        table = table_of("| 10 | x | 30 |", "| 20 | y | 40 |", "| 30 | z | 50 |")
        context = m.EvalContext(table=table, current_row=2, current_col=2)
        self.assertEqual(m.evaluate_expression("$-1+$+1", context), 60)
        self.assertEqual(m.evaluate_expression("@-1$1+@+1$1", context), 40)

    def test_special_references(self):
        table = table_of("| h | h |", "|---+---|", "| 1 | 2 |", "| 3 | 4 |", "| 5 | 6 |")
        context = m.EvalContext(table=table, current_row=2)
        self.assertEqual(m.evaluate_expression("@#", context), 3)
        self.assertEqual(m.evaluate_expression("$#", context), 2)
        self.assertEqual(m.evaluate_expression("@>$1", context), 5)
        self.assertEqual(m.evaluate_expression("@I$2", context), 2)

    def test_parameters_and_column_names(self):
        table = table_of(
            "| item      | cost |",
            "|-----------+------|",
            "| a         | 100  |",
            "| $rate=1.5 |      |",
        )
        context = m.EvalContext(table=table, current_row=2, current_col=2)
        self.assertEqual(table.parameters, {"rate": "1.5"})
        self.assertEqual(m.evaluate_expression("$cost*$rate", context), 150)

    def test_constants(self):
        table = table_of("| 100 |")
        constants = m.parse_document_constants("#+CONSTANTS: vat=0.25 pi=3.14\ntext")
        self.assertEqual(constants, {"vat": "0.25", "pi": "3.14"})
        context = m.EvalContext(table=table, current_row=1, constants=constants)
        self.assertEqual(m.evaluate_expression("$1*$vat", context), 25)

    def test_unknown_name_is_an_error(self):
        context = m.EvalContext(table=table_of("| 1 |"), current_row=1)
        self.assertTrue(str(m.evaluate_expression("$nothing+1", context)).startswith("#ERROR:"))

    def test_remote_reference(self):
        lines = ["#+NAME: rates", "| 4 | 5 |", "", "| 10 |"]
        named = m.find_named_tables(lines)
        local = m.parse_table(lines, 3)
        context = m.EvalContext(table=local, current_row=1, named_tables=named)
        self.assertEqual(m.evaluate_expression("remote(rates, @1$2)*$1", context), 50)
        self.assertEqual(m.evaluate_expression("vsum(remote(rates, @1$1..@1$2))", context), 9)

    # ---------- aggregates ----------

    def test_aggregates_over_range(self):
        table = table_of("| 10 |", "| 20 |", "| 30 |")
        context = m.EvalContext(table=table, current_row=1, current_col=2)
        self.assertEqual(m.evaluate_expression("vsum(@1$1..@3$1)", context), 60)
        self.assertEqual(m.evaluate_expression("vmean(@1$1..@3$1)", context), 20)
        self.assertEqual(m.evaluate_expression("vmax(@1$1..@3$1)-vmin(@1$1..@3$1)", context), 20)
        self.assertEqual(m.evaluate_expression("vcount(@1$1..@3$1)", context), 3)

    def test_empty_range_aggregates_to_zero(self):
        for name in ("vsum", "vmean", "vmin", "vmax", "vcount", "vprod", "sdev"):
            self.assertEqual(m.aggregate(name, []), 0)
        table = table_of("| 10 |")
        context = m.EvalContext(table=table, current_row=1)
        self.assertEqual(m.evaluate_expression("vmax(@5$1..@6$1)", context), 0)

    # ---------- evaluation ----------

    def test_division_by_zero_is_in_band(self):
        context = m.EvalContext(table=table_of("| 1 | 0 |"), current_row=1)
        self.assertEqual(m.evaluate_expression("$1/$2", context), "#ERROR: division by zero")

    def test_non_numeric_cell_is_in_band(self):
        context = m.EvalContext(table=table_of("| abc |"), current_row=1)
        self.assertTrue(str(m.evaluate_expression("$1+1", context)).startswith("#ERROR:"))

    def test_arithmetic_rejects_names(self):
        with self.assertRaises(m.FormulaError):
            m.evaluate_arithmetic("__import__('os')")

    def test_arithmetic_precedence(self):
        self.assertEqual(m.evaluate_arithmetic("2+3*4"), 14)
        self.assertEqual(m.evaluate_arithmetic("-(2+3)*2"), -10)
        self.assertEqual(m.evaluate_arithmetic("7%4"), 3)

    # ---------- formatting ----------

    def test_format_result(self):
        self.assertEqual(m.format_result(30.0), "30")
        self.assertEqual(m.format_result(2.5), "2.5")
        self.assertEqual(m.format_result(12600, "U"), "3:30")
        self.assertEqual(m.format_result(0.456, "%.1f"), "0.5")
        self.assertEqual(m.format_result(7, "%5d%%"), "    7%")
        self.assertEqual(m.format_result("#ERROR: x", "%.2f"), "#ERROR: x")

    def test_duration_flag_beats_printf_format(self):
        self.assertEqual(m.duration_flag("T"), "T")
        self.assertEqual(m.duration_flag("%dU"), "U")
        self.assertEqual(m.duration_flag("%.1ft"), "t")
        self.assertIsNone(m.duration_flag("%.2f"))
        self.assertIsNone(m.duration_flag(None))
        self.assertEqual(m.format_result(5400, "%dT"), "1:30:00")
        self.assertEqual(m.format_result(7200, "%.1ft"), "2.00")

    # ---------- applying formulas ----------

    def test_duration_formula(self):
        table = table_of(
            "| start | end   | dur |",
            "|-------+-------+-----|",
            "| 9:00  | 12:30 |     |",
            "#+TBLFM: $3=$2-$1;U",
        )
        self.assertEqual(m.apply_formulas(table), {"@2$3": "3:30"})

    def test_duration_formula_with_printf_format(self):
        table = table_of(
            "| start | end  | dur |",
            "|-------+------+-----|",
            "| 1:00  | 2:30 |     |",
            "#+TBLFM: $3=$2-$1;%dU",
        )
        self.assertEqual(m.apply_formulas(table), {"@2$3": "1:30"})

    def test_later_formula_wins(self):
        table = table_of("| 1 | |", "| 2 | |", "#+TBLFM: $2=$1::@1$2=5")
        updates = m.apply_formulas(table)
        self.assertEqual(updates["@1$2"], "5")
        self.assertEqual(updates["@2$2"], "2")

    def test_negative_target_row_counts_from_last_row(self):
        table = table_of("| 1 | |", "| 2 | |", "| 3 | |", "#+TBLFM: @-1$2=@-1$1*10")
        self.assertEqual(m.apply_formulas(table), {"@2$2": "10"})

    def test_range_target(self):
        table = table_of("| 1 | | |", "| 2 | | |", "#+TBLFM: @1$2..@2$3=$1*2")
        updates = m.apply_formulas(table)
        self.assertEqual(updates, {"@1$2": "2", "@1$3": "2", "@2$2": "4", "@2$3": "4"})

    def test_column_formula_skips_parameter_rows(self):
        table = table_of(
            "| x   | y |",
            "|-----+---|",
            "| 2   |   |",
            "| $k=3 |   |",
            "#+TBLFM: $2=$1*$k",
        )
        self.assertEqual(m.apply_formulas(table), {"@2$2": "6"})

    # ---------- whole documents ----------

    def test_recalculate_all_tables(self):
        text = (
            "#+CONSTANTS: vat=0.25\n"
            "| item | cost | tax |\n"
            "|------+------+-----|\n"
            "| a    | 100  |     |\n"
            "#+TBLFM: $3=$cost*$vat\n"
            "\n"
            "| 1 | 2 | |\n"
            "#+TBLFM: $3=$1+$2\n"
        )
        result = m.recalculate_all_tables(text)
        self.assertIn("| a | 100 | 25 |", result)
        self.assertIn("|------+------+-----|", result)
        self.assertIn("| 1 | 2 | 3 |", result)
        self.assertTrue(result.endswith("\n"))

    def test_recalculate_table_without_formulas(self):
        self.assertIsNone(m.recalculate_table("| 1 | 2 |\n", 0))

    def test_recalculate_all_tables_leaves_other_text(self):
        text = "* Heading\nplain text\n"
        self.assertEqual(m.recalculate_all_tables(text), text)


if __name__ == "__main__":
    unittest.main()
