from threading import Lock

_PRINT_LOCK = Lock()


def locked_print(*args, **kwargs):
    with _PRINT_LOCK:
        print(*args, **kwargs)
