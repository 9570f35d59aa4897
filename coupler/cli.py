"""
Coupler CLI - send text as audio, receive it back.
"""

import logging
import sys
import time

import click

from . import (
    AMPLITUDE,
    BAUD_RATE,
    CARRIER_FREQ,
    DEVIATION_FREQ,
    SAMPLE_RATE,
)
from .config import ModulationConfig, ModulationScheme


def modem_options(func):
    """Options shared by send and receive; both sides must agree on them."""
    options = [
        click.option(
            "-s", "--sample-rate",
            type=float,
            default=SAMPLE_RATE,
            show_default=True,
            help="Sample rate in Hz",
        ),
        click.option(
            "-b", "--baud-rate",
            type=int,
            default=BAUD_RATE,
            show_default=True,
            help="Symbols per second",
        ),
        click.option(
            "--scheme",
            type=click.Choice([s.name for s in ModulationScheme], case_sensitive=False),
            default=ModulationScheme.BFSK.name,
            show_default=True,
            help="BFSK (1 bit/symbol) or QFSK (2 bits/symbol)",
        ),
        click.option(
            "--carrier",
            type=float,
            default=CARRIER_FREQ,
            show_default=True,
            help="Tone for symbol 0 in Hz",
        ),
        click.option(
            "--deviation",
            type=float,
            default=DEVIATION_FREQ,
            show_default=True,
            help="Spacing between tones in Hz",
        ),
        click.option(
            "-v", "--verbose",
            is_flag=True,
            help="Verbose output with detailed logging",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _configure(sample_rate, baud_rate, scheme, carrier, deviation, amplitude=AMPLITUDE, verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        return ModulationConfig(
            sample_rate=sample_rate,
            baud_rate=baud_rate,
            amplitude=amplitude,
            scheme=ModulationScheme[scheme.upper()],
            carrier_freq=carrier,
            deviation_freq=deviation,
        )
    except ValueError as e:
        click.echo(f"Invalid modem settings: {e}", err=True)
        sys.exit(2)


@click.group()
@click.version_option(package_name="coupler")
def main():
    """Software acoustic coupler: CPFSK modem with Hamming FEC."""


@main.command()
@click.argument("text", type=str)
@click.option(
    "-o", "--output",
    type=str,
    default="data",
    show_default=True,
    help="Output WAV file (.wav is appended when there is no extension)",
)
@click.option(
    "-p", "--play",
    "play_audio",
    is_flag=True,
    help="Play through the speaker instead of writing a file",
)
@click.option(
    "-d", "--device",
    type=int,
    help="Audio output device number (default: system default)",
)
@click.option(
    "-a", "--amplitude",
    type=float,
    default=AMPLITUDE,
    show_default=True,
    help="Peak amplitude in 16-bit sample units",
)
@modem_options
def send(text, output, play_audio, device, amplitude,
         sample_rate, baud_rate, scheme, carrier, deviation, verbose):
    """
    Encode TEXT as an acoustic transmission.

    Examples:

        coupler send hello -o hello.wav

        coupler send "hi there" --play --scheme qfsk
    """
    from .transmitter import Transmitter, wav_name

    config = _configure(sample_rate, baud_rate, scheme, carrier, deviation, amplitude, verbose)
    transmitter = Transmitter(config)

    if verbose:
        bits = transmitter.encode(text)
        click.echo(f"Sending {len(text.encode('utf-8'))} bytes as {len(bits)} framed bits")
        click.echo(f"  Scheme: {config.scheme.name} at {config.baud_rate} baud")
        click.echo(f"  Tones: {', '.join(f'{t:.0f}' for t in config.tones)} Hz")

    try:
        if play_audio:
            transmitter.send(text, device=device)
            click.echo("✓ Played transmission")
        else:
            path = wav_name(output)
            transmitter.send_to_file(path, text)
            click.echo(f"✓ Generated {path}")
    except Exception as e:
        click.echo(f"Error sending: {e}", err=True)
        sys.exit(1)


@main.command()
@click.option(
    "-i", "--input",
    "input_path",
    type=click.Path(exists=True),
    help="Decode from file instead of live audio",
)
@click.option(
    "-d", "--device",
    type=int,
    help="Audio device number (default: system default)",
)
@click.option(
    "--answer",
    is_flag=True,
    help="Play the answer tone when a dial tone is heard",
)
@modem_options
def receive(input_path, device, answer, sample_rate, baud_rate, scheme, carrier, deviation, verbose):
    """
    Receive transmissions from a file or the microphone.

    Examples:

        coupler receive -i hello.wav

        coupler receive --answer -d 2
    """
    from .receiver import Listener, decode_file

    config = _configure(sample_rate, baud_rate, scheme, carrier, deviation, verbose=verbose)

    # File decoding mode
    if input_path:
        click.echo(f"Decoding from file: {input_path}")
        click.echo("-" * 40)

        receptions = decode_file(input_path, config)
        if not receptions:
            click.echo("No frames decoded.", err=True)
            sys.exit(1)

        for reception in receptions:
            suffix = f"  (corrected {reception.corrected} bits)" if reception.corrected else ""
            click.echo(f"{reception.text}{suffix}")
        return

    # Live decoding mode
    def on_reception(reception):
        suffix = f"  (corrected {reception.corrected} bits)" if reception.corrected else ""
        click.echo(f"\n> {reception.text}{suffix}")

    click.echo("Listening for calls...")
    if device is not None:
        click.echo(f"Using device {device}")
    click.echo("Press Ctrl+C to stop.")
    click.echo("-" * 40)

    listener = Listener(config, callback=on_reception, device=device, answer=answer)
    last_state = None
    try:
        listener.start()
        while True:
            time.sleep(0.1)
            state = listener.session.state
            if state != last_state:
                click.echo(f"\r[{state.name}]", nl=False)
                last_state = state
    except KeyboardInterrupt:
        click.echo("\n\nStopped.")
    except Exception as e:
        click.echo(f"\nError: {e}", err=True)
        sys.exit(1)
    finally:
        listener.stop()
        if verbose:
            click.echo(f"Stats: {listener.get_statistics()}")


@main.command()
def devices():
    """List available audio devices."""
    from .audio import list_devices

    click.echo("Audio Devices:")
    click.echo("-" * 60)
    for index, name, inputs, outputs in list_devices():
        kinds = []
        if inputs:
            kinds.append(f"{inputs} in")
        if outputs:
            kinds.append(f"{outputs} out")
        click.echo(f"  [{index}] {name} ({', '.join(kinds)})")


if __name__ == "__main__":
    main()
