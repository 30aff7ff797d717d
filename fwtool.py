#! /usr/bin/env python3

# Firmware image build and boot simulation script

if __name__ == '__main__':
    from fwboot._cli import main
    main()
else:
    raise ImportError('fwtool is not importable. Import fwboot instead')
