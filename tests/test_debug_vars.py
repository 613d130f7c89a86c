from core.debug_vars import get_debug_var, get_debug_vars, set_debug_var, set_debug_vars


def test_snapshot_is_a_copy():
    set_debug_var('Test/Value', 1)
    snapshot = get_debug_vars()
    set_debug_var('Test/Value', 2)
    assert snapshot['Test/Value'] == 1
    assert get_debug_vars()['Test/Value'] == 2


def test_prefixed_batch_write():
    set_debug_vars('Vision', {'Count': 3, 'Pose': (1.0, 2.0, 0.0)})
    assert get_debug_var('Vision/Count') == 3
    assert get_debug_var('Vision/Pose') == (1.0, 2.0, 0.0)
    assert get_debug_var('Vision/Missing', 'n/a') == 'n/a'
