"""Run all examples."""

from varpro.examples import ex1_simple, ex2_bounds, ex3_regularized


def main():
    """Run all examples in sequence."""
    print("\n" + "=" * 80)
    print("RUNNING ALL EXAMPLES")
    print("=" * 80)

    ex1_simple.main()

    print("\n")
    ex2_bounds.main()

    print("\n")
    ex3_regularized.main()

    print("\n" + "=" * 80)
    print("ALL EXAMPLES COMPLETE")
    print("=" * 80)


if __name__ == "__main__":
    main()
