import datetime

from domain.comments import Comment
from services.comment_tree import MAX_RENDER_DEPTH, build_comment_forest, flatten_comment_forest

BASE = datetime.datetime(2024, 3, 1, tzinfo=datetime.timezone.utc)


def comment(comment_id, parent_id=None, post_id="post-1", minute=0):
    return Comment(
        id=comment_id,
        post_id=post_id,
        parent_id=parent_id,
        name=f"visitor {comment_id}",
        content=f"comment {comment_id}",
        created_at=BASE + datetime.timedelta(minutes=minute),
    )


def shape(nodes):
    return [(node.id, shape(node.replies)) for node in nodes]


def test_dangling_parent_becomes_root():
    forest = build_comment_forest([comment("1"), comment("2", "1"), comment("3", "99")])
    nodes = forest.to_nodes()
    assert [node.id for node in nodes] == ["1", "3"]
    assert [reply.id for reply in nodes[0].replies] == ["2"]
    assert nodes[1].replies == []


def test_replies_to_replies_attach_to_immediate_parent():
    forest = build_comment_forest([comment("1"), comment("2", "1"), comment("3", "2"), comment("4", "3")])
    assert shape(forest.to_nodes()) == [("1", [("2", [("3", [("4", [])])])])]


def test_children_before_parents_in_input():
    forest = build_comment_forest([comment("3", "2"), comment("2", "1"), comment("1")])
    assert shape(forest.to_nodes()) == [("1", [("2", [("3", [])])])]


def test_sibling_order_follows_input_order():
    comments = [comment("1"), comment("b", "1"), comment("a", "1"), comment("c", "1"), comment("0")]
    forest = build_comment_forest(comments)
    assert [c.id for c in forest.replies_of("1")] == ["b", "a", "c"]
    assert [node.id for node in forest.to_nodes()] == ["1", "0"]


def test_self_reference_is_a_root():
    forest = build_comment_forest([comment("1", "1")])
    assert shape(forest.to_nodes()) == [("1", [])]


def test_parent_cycle_is_broken_without_dropping_comments():
    comments = [comment("1"), comment("a", "b"), comment("b", "a"), comment("c", "b")]
    nodes = build_comment_forest(comments).to_nodes()
    assert shape(nodes) == [("1", []), ("a", [("b", [("c", [])])])]
    assert sorted(c.id for c in flatten_comment_forest(nodes)) == ["1", "a", "b", "c"]


def test_parent_cycle_cut_at_first_member_in_input_order():
    comments = [comment("a", "b"), comment("b", "a")]
    assert shape(build_comment_forest(comments).to_nodes()) == [("a", [("b", [])])]


def test_arena_keeps_positions():
    comments = [comment("1"), comment("2", "1"), comment("3")]
    forest = build_comment_forest(comments)
    assert forest.index == {"1": 0, "2": 1, "3": 2}
    assert forest.children == [[1], [], []]
    assert forest.roots == [0, 2]


def test_flatten_then_rebuild_keeps_shape():
    comments = [
        comment("1"),
        comment("2", "1", minute=1),
        comment("3", "99", minute=2),
        comment("4", "2", minute=3),
        comment("5", "1", minute=4),
        comment("6", minute=5),
    ]
    nodes = build_comment_forest(comments).to_nodes()
    flat = flatten_comment_forest(nodes)
    assert [c.id for c in flat] == ["1", "2", "4", "5", "3", "6"]
    assert shape(build_comment_forest(flat).to_nodes()) == shape(nodes)


def test_empty_input():
    forest = build_comment_forest([])
    assert forest.to_nodes() == []
    assert flatten_comment_forest([]) == []


def chain(length):
    return [comment("0")] + [comment(str(i), str(i - 1), minute=i) for i in range(1, length)]


def depth_of(nodes):
    depth = 0
    while nodes:
        depth += 1
        nodes = nodes[-1].replies
    return depth


def test_max_depth_attaches_deeper_replies_to_last_ancestor():
    forest = build_comment_forest(chain(5))
    assert shape(forest.to_nodes(max_depth=2)) == [("0", [("1", [("2", []), ("3", []), ("4", [])])])]


def test_max_depth_keeps_preorder_among_siblings():
    comments = [
        comment("1"),
        comment("2", "1"),
        comment("3", "2"),
        comment("4", "3"),
        comment("5", "2"),
        comment("6", "1"),
    ]
    nodes = build_comment_forest(comments).to_nodes(max_depth=1)
    assert shape(nodes) == [("1", [("2", []), ("3", []), ("4", []), ("5", []), ("6", [])])]


def test_max_depth_zero_renders_everything_top_level():
    nodes = build_comment_forest(chain(3)).to_nodes(max_depth=0)
    assert shape(nodes) == [("0", []), ("1", []), ("2", [])]


def test_very_deep_chain_is_built_and_capped():
    comments = chain(2000)
    forest = build_comment_forest(comments)
    assert forest.roots == [0]
    assert forest.children[1998] == [1999]

    nodes = forest.to_nodes(max_depth=MAX_RENDER_DEPTH)
    assert depth_of(nodes) == MAX_RENDER_DEPTH + 1
    assert len(flatten_comment_forest(nodes)) == 2000
    assert [c.id for c in flatten_comment_forest(nodes)] == [c.id for c in comments]
