from rulevo import evaluate
from rulevo.demos import copy_rule_problem, example_copy_rule_search, example_next_board


def test_example_next_board(capsys):
    results = example_next_board()
    assert results == [
        ("blank", "next_board(:3, :3, :x)"),
        ("occupied", "next_board(:3, :3, :o)"),
    ]
    assert "Tic-tac-toe" in capsys.readouterr().out


def test_example_copy_rule_search(capsys):
    diagram = example_copy_rule_search()
    for example in copy_rule_problem().examples:
        assert evaluate(diagram, example.inputs) == example.outputs
    assert "Best Diagram Found" in capsys.readouterr().out
